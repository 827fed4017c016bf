"""
Exchange Errors - Exceptions raised at the Bybit client seam
"""
from typing import Any, Dict, Optional

# retCode Bybit returns when set-leverage is called with the current value
LEVERAGE_NOT_MODIFIED = 110043


class ExchangeError(Exception):
    """Venue or transport failure reported by Bybit"""

    def __init__(self, message: str, code: Optional[int] = None, response: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.response = response or {}


def is_leverage_unchanged(error: BaseException) -> bool:
    """True when the error says leverage already matches the requested value"""
    code = getattr(error, "code", None)
    if code is None:
        code = getattr(error, "status_code", None)
    if code == LEVERAGE_NOT_MODIFIED:
        return True
    return str(LEVERAGE_NOT_MODIFIED) in str(error)
