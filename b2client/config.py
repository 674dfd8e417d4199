"""Configuration classes for the B2 client."""
import os
from dataclasses import dataclass, field, replace
from typing import Optional

from dotenv import load_dotenv

from .types import DEFAULT_API_URL

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_JITTER = 1.0     # multiples of unit
DEFAULT_MIN_DELAY = 1.0  # seconds
DEFAULT_UNIT = 1.0       # seconds
DEFAULT_TIMEOUT = 60.0   # seconds, per HTTP round trip


@dataclass
class RetryConfig:
    """Retry settings for the RetryClient.

    Zero-valued fields fall back to the module defaults when resolved, so a
    bare ``RetryConfig(max_attempts=0)`` behaves like ``RetryConfig()``.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    jitter: float = DEFAULT_JITTER        # max deviation, in multiples of unit
    min_delay: float = DEFAULT_MIN_DELAY  # seconds
    max_delay: float = 0.0                # seconds, 0 means unbounded
    unit: float = DEFAULT_UNIT            # seconds

    def resolved(self) -> "RetryConfig":
        """Return a copy with every zero field replaced by its default."""
        return replace(
            self,
            max_attempts=self.max_attempts or DEFAULT_MAX_ATTEMPTS,
            jitter=self.jitter or DEFAULT_JITTER,
            min_delay=self.min_delay or DEFAULT_MIN_DELAY,
            max_delay=self.max_delay or 0.0,
            unit=self.unit or DEFAULT_UNIT,
        )


@dataclass
class Credentials:
    """Long-lived account credentials exchanged for an auth token."""
    key_id: str = ""  # also known as the account or application id
    app_key: str = ""
    key_name: str = ""

    def __bool__(self):
        return bool(self.key_id and self.app_key)

    @classmethod
    def from_env(cls, prefix: str = "") -> "Credentials":
        """Read credentials from ``{prefix}B2_KEY_ID`` and friends.

        The legacy ``B2_ACCOUNT_*`` names are accepted as fallbacks.
        """
        def getenv(*keys):
            for key in keys:
                value = os.getenv(prefix + key)
                if value:
                    return value
            return ""

        return cls(
            key_id=getenv("B2_KEY_ID", "B2_ACCOUNT_ID"),
            app_key=getenv("B2_APP_KEY", "B2_ACCOUNT_KEY"),
            key_name=getenv("B2_KEY_NAME", "B2_ACCOUNT_NAME"),
        )


@dataclass
class ClientConfig:
    """Everything needed to build a ready-to-use RetryClient."""
    credentials: Credentials = field(default_factory=Credentials)
    retry: RetryConfig = field(default_factory=RetryConfig)
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    user_agent: Optional[str] = None
    test_mode: Optional[str] = None  # X-Bz-Test-Mode value, for B2's failure injection

    @classmethod
    def from_env(cls, prefix: str = "", dotenv_path: Optional[str] = None) -> "ClientConfig":
        """Build a config from the environment, loading a .env file first."""
        load_dotenv(dotenv_path=dotenv_path)

        def number(key, default, cast=float):
            value = os.getenv(prefix + key)
            return cast(value) if value else default

        retry = RetryConfig(
            max_attempts=number("B2_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS, int),
            jitter=number("B2_RETRY_JITTER", DEFAULT_JITTER),
            min_delay=number("B2_RETRY_MIN", DEFAULT_MIN_DELAY),
            max_delay=number("B2_RETRY_MAX", 0.0),
            unit=number("B2_RETRY_UNIT", DEFAULT_UNIT),
        )
        return cls(
            credentials=Credentials.from_env(prefix),
            retry=retry,
            api_url=os.getenv(prefix + "B2_API_URL", DEFAULT_API_URL),
            timeout=number("B2_TIMEOUT", DEFAULT_TIMEOUT),
            user_agent=os.getenv(prefix + "B2_USER_AGENT") or None,
            test_mode=os.getenv(prefix + "B2_TEST_MODE") or None,
        )


@dataclass
class TransferConfig:
    """Configuration for large file uploads."""
    large_file_threshold: int = 200 * 1000 * 1000  # bytes, smaller files use one upload
    part_size: int = 0  # bytes, 0 uses the account's recommended part size
    max_parts: int = 10000  # B2 limit
