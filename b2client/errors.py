"""Exception hierarchy for the B2 client.

Errors are decided once, at the HTTP boundary, and carry everything the
retry layer needs to classify them (status, API code, retry-after hint).
"""
from typing import Optional

from .types import ERR_CODE_EXPIRED_AUTH_TOKEN


class B2Error(Exception):
    """Base class for all B2 client errors."""
    def __init__(self, message: str, code: str = "b2_error"):
        super().__init__(message)
        self.message = message
        self.code = code


class ErrorResponse(B2Error):
    """Non-200 response from the B2 API."""
    def __init__(self, status: int, code: str, message: str,
                 retry_after: Optional[float] = None):
        super().__init__(message, code)
        self.status = status
        # seconds, typically set when is_too_many_requests
        self.retry_after = retry_after

    def __str__(self):
        return f"{self.status}: {self.code} - {self.message}"

    def __repr__(self):
        return (f"ErrorResponse(status={self.status!r}, code={self.code!r}, "
                f"message={self.message!r}, retry_after={self.retry_after!r})")

    @classmethod
    def from_dict(cls, data: dict, retry_after: Optional[float] = None) -> "ErrorResponse":
        return cls(
            status=int(data.get("status", 0)),
            code=str(data.get("code", "")),
            message=str(data.get("message", "")),
            retry_after=retry_after,
        )

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    @property
    def is_forbidden(self) -> bool:
        return self.status == 403

    @property
    def is_request_timeout(self) -> bool:
        return self.status == 408

    @property
    def is_too_many_requests(self) -> bool:
        return self.status == 429

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status <= 599

    @property
    def is_expired_auth(self) -> bool:
        return self.is_unauthorized and self.code == ERR_CODE_EXPIRED_AUTH_TOKEN


class NetworkTimeout(B2Error):
    """The transport timed out connecting or waiting for a response."""
    def __init__(self, message: str = "network timeout"):
        super().__init__(message, "network_timeout")


class UnexpectedEOF(B2Error):
    """The connection dropped or a body ended before it was fully transferred."""
    def __init__(self, message: str = "unexpected end of stream"):
        super().__init__(message, "unexpected_eof")


class TransportError(B2Error):
    """Any other failure below the HTTP layer (TLS, invalid URL, decoding)."""
    def __init__(self, message: str):
        super().__init__(message, "transport_error")


class MissingAuthorization(B2Error):
    """No auth token is cached and no credentials are available to get one."""
    def __init__(self, message: str = "auth token is required"):
        super().__init__(message, "missing_authorization")


class CancellationRequested(B2Error):
    """The caller cancelled the call or its deadline passed."""
    def __init__(self, message: str = "call cancelled", deadline_exceeded: bool = False):
        super().__init__(message, "deadline_exceeded" if deadline_exceeded else "cancelled")
        self.deadline_exceeded = deadline_exceeded


class AttemptsExceeded(B2Error):
    """Retries were exhausted; the last underlying error is chained as __cause__."""
    def __init__(self, operation: str, attempts: int, error: BaseException):
        super().__init__(
            f"Error while {operation} (exceeded {attempts} attempts): {error}",
            "attempts_exceeded",
        )
        self.operation = operation
        self.attempts = attempts
        self.error = error
