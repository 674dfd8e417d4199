"""Thread-safe single-slot cache for the account auth token."""
import dataclasses
import logging
import threading
from typing import Optional

from .models import AuthToken

logger = logging.getLogger(__name__)


class AuthTokenCache:
    """Holds the most recent successful authorization.

    get, set and invalidate serialize on one lock, so a reader sees either a
    complete token or none. Tokens carry no expiry here: a token is trusted
    until the server reports it expired.
    """

    def __init__(self, token: Optional[AuthToken] = None):
        self._token = token
        self._lock = threading.Lock()

    def get(self) -> Optional[AuthToken]:
        """Return a copy of the cached token, or None."""
        with self._lock:
            if self._token is None:
                return None
            return dataclasses.replace(self._token)

    def set(self, token: AuthToken):
        with self._lock:
            self._token = token

    def invalidate(self, stale: Optional[AuthToken] = None) -> bool:
        """Clear the cached token.

        Args:
            stale: If given, only clear when the cache still holds a token with
                this authorization string; a caller that already re-authorized
                keeps its fresh token

        Returns:
            True if a token was cleared
        """
        with self._lock:
            if self._token is None:
                return False
            if stale is not None and self._token.authorization_token != stale.authorization_token:
                logger.debug("Auth token already refreshed, keeping the newer one")
                return False
            self._token = None
            return True

    def __bool__(self):
        with self._lock:
            return self._token is not None
