"""Classification of call failures into retry decisions."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .context import CallContext
from .errors import (
    CancellationRequested,
    ErrorResponse,
    MissingAuthorization,
    NetworkTimeout,
    UnexpectedEOF,
)


class ErrorKind(Enum):
    """What went wrong."""
    NETWORK_TIMEOUT = "network_timeout"
    FORBIDDEN = "forbidden"
    EXPIRED_AUTH = "expired_auth"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    UNEXPECTED_EOF = "unexpected_eof"
    CANCELLED = "cancelled"
    MISSING_AUTH = "missing_auth"
    FATAL = "fatal"


class Disposition(Enum):
    """What the retry loop should do about it."""
    RETRY = "retry"
    RETRY_AFTER_REAUTH = "retry_after_reauth"
    RETRY_AFTER_DELAY_HINT = "retry_after_delay_hint"
    FATAL = "fatal"


# Upload failures after which the upload URL can no longer be trusted
_UPLOAD_URL_INVALIDATING = {
    ErrorKind.EXPIRED_AUTH,
    ErrorKind.SERVER_ERROR,
    ErrorKind.UNEXPECTED_EOF,
}


@dataclass(frozen=True)
class ClassifiedError:
    """A failure tagged with its kind and retry disposition."""
    kind: ErrorKind
    disposition: Disposition
    error: BaseException
    retry_after: Optional[float] = None  # seconds, server supplied

    @property
    def retryable(self) -> bool:
        return self.disposition is not Disposition.FATAL

    @property
    def needs_reauth(self) -> bool:
        return self.disposition is Disposition.RETRY_AFTER_REAUTH

    @property
    def refresh_upload_url(self) -> bool:
        return self.kind in _UPLOAD_URL_INVALIDATING


def _retry(kind: ErrorKind, err: BaseException, retry_after: Optional[float]) -> ClassifiedError:
    disposition = Disposition.RETRY_AFTER_DELAY_HINT if retry_after else Disposition.RETRY
    return ClassifiedError(kind, disposition, err, retry_after or None)


def classify(err: BaseException, ctx: Optional[CallContext] = None,
             upload: bool = False) -> ClassifiedError:
    """Classify a failed attempt.

    The result depends only on the error, the context state and the path,
    so classifying the same failure twice gives the same answer.

    Args:
        err: The exception raised by the attempt
        ctx: Context of the call; a done context makes every failure fatal
        upload: True on the upload path, where 5xx and dropped connections
            are retried with a fresh upload URL

    Returns:
        ClassifiedError describing the failure
    """
    if isinstance(err, CancellationRequested):
        return ClassifiedError(ErrorKind.CANCELLED, Disposition.FATAL, err)
    if ctx is not None and ctx.done():
        return ClassifiedError(ErrorKind.CANCELLED, Disposition.FATAL, err)

    if isinstance(err, MissingAuthorization):
        return ClassifiedError(ErrorKind.MISSING_AUTH, Disposition.FATAL, err)

    if isinstance(err, NetworkTimeout):
        return _retry(ErrorKind.NETWORK_TIMEOUT, err, None)

    if isinstance(err, ErrorResponse):
        retry_after = err.retry_after
        if err.is_too_many_requests:
            return _retry(ErrorKind.RATE_LIMITED, err, retry_after)
        if err.is_request_timeout:
            return _retry(ErrorKind.NETWORK_TIMEOUT, err, retry_after)
        # forbidden also covers transient cap/quota conditions
        if err.is_forbidden:
            return _retry(ErrorKind.FORBIDDEN, err, retry_after)
        if err.is_expired_auth:
            return ClassifiedError(ErrorKind.EXPIRED_AUTH, Disposition.RETRY_AFTER_REAUTH,
                                   err, retry_after or None)
        if upload and err.is_server_error:
            return _retry(ErrorKind.SERVER_ERROR, err, retry_after)
        return ClassifiedError(ErrorKind.FATAL, Disposition.FATAL, err, retry_after or None)

    if upload and isinstance(err, UnexpectedEOF):
        return _retry(ErrorKind.UNEXPECTED_EOF, err, None)

    return ClassifiedError(ErrorKind.FATAL, Disposition.FATAL, err)
