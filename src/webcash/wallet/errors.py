"""Error taxonomy for wallet operations."""

from __future__ import annotations


class WebcashError(Exception):
    """Base class for wallet errors."""


class WebcashFormatError(WebcashError, ValueError):
    """Raised when a webcash string or amount literal is malformed."""


class WebcashPrecisionError(WebcashError, ValueError):
    """Raised when an amount carries more than 8 fractional digits."""


class WebcashPolicyError(WebcashError):
    """Raised when an operation is refused before touching wallet state."""


class WebcashInsufficientFundsError(WebcashPolicyError):
    """Raised when confirmed webcash cannot cover a payment."""


class WebcashTransportError(WebcashError):
    """Raised when the replace or health check server call fails."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
