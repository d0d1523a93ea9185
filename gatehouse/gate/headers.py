"""Response header decoration for the admission gate.

Every response leaving AdmissionGatekeeper (pass-through, 405 and 429
alike) goes through apply_security_headers(). The four baseline headers are
always set; configured extras (Content-Security-Policy,
Strict-Transport-Security) are added on top.

Values are SET, not appended: a downstream handler cannot weaken them.
"""

from __future__ import annotations

from typing import Mapping, MutableMapping, Optional

from gatehouse.constants import SECURITY_HEADERS
from gatehouse.utils.logger import get_logger

logger = get_logger(__name__)


def build_security_headers(extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Return the full header set: the fixed baseline plus ``extra``.

    Baseline values win over an ``extra`` entry with the same name.
    """
    headers: dict[str, str] = dict(extra or {})
    headers.update(SECURITY_HEADERS)
    return headers


def apply_security_headers(
    response_headers: MutableMapping[str, str],
    security_headers: Mapping[str, str],
) -> None:
    """Set each header on the response, one at a time.

    A header that cannot be set is logged and skipped so the rest still apply
    and the response is still delivered.
    """
    for name, value in security_headers.items():
        try:
            response_headers[name] = value
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Security header could not be set",
                header=name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
