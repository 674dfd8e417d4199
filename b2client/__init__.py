"""Backblaze B2 client with automatic re-authorization and retries."""
from .auth_cache import AuthTokenCache
from .backoff import exp_backoff
from .classifier import ClassifiedError, Disposition, ErrorKind, classify
from .client import Client
from .config import ClientConfig, Credentials, RetryConfig, TransferConfig
from .context import CallContext
from .errors import (
    AttemptsExceeded,
    B2Error,
    CancellationRequested,
    ErrorResponse,
    MissingAuthorization,
    NetworkTimeout,
    TransportError,
    UnexpectedEOF,
)
from .readers import HashedPostfixedReader
from .retry_client import RetryClient
from .storage import MemoryStorage, TempFileStorage, TempStorage
from .transfer import LargeFileUploader
from .types import CLIENT_VERSION as __version__

__all__ = [
    "AttemptsExceeded",
    "AuthTokenCache",
    "B2Error",
    "CallContext",
    "CancellationRequested",
    "ClassifiedError",
    "Client",
    "ClientConfig",
    "Credentials",
    "Disposition",
    "ErrorKind",
    "ErrorResponse",
    "HashedPostfixedReader",
    "LargeFileUploader",
    "MemoryStorage",
    "MissingAuthorization",
    "NetworkTimeout",
    "RetryClient",
    "RetryConfig",
    "TempFileStorage",
    "TempStorage",
    "TransferConfig",
    "TransportError",
    "UnexpectedEOF",
    "classify",
    "exp_backoff",
]
