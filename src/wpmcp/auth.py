"""Authentication and rate limiting for the HTTP surface.

Handles:
- Shared API key checks (``X-API-Key`` and its variants, or an ``api_key``
  body field)
- Per-client fixed-window rate limiting
"""

import hmac
import threading
import time
from typing import Any, Callable, Mapping, Optional

from fastapi.security import APIKeyHeader

from shared.logging import get_logger

logger = get_logger(__name__)

# Header names accepted for the API key, in lookup order
API_KEY_HEADERS = ("x-api-key", "x-apikey", "x_api_key", "apikey", "api_key")
API_KEY_FIELD = "api_key"

# Declares the key in the OpenAPI schema; missing keys are left to APIKeyAuth
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def extract_api_key(headers: Mapping[str, str], body: Any = None) -> Optional[str]:
    """Find the API key in request headers, falling back to the body."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in API_KEY_HEADERS:
        value = lowered.get(name)
        if value:
            return value

    if isinstance(body, dict):
        value = body.get(API_KEY_FIELD)
        if isinstance(value, str) and value:
            return value
    return None


class APIKeyAuth:
    """
    Shared-secret authentication.

    The presented key is compared in constant time. With ``require_auth``
    off every request is accepted.
    """

    def __init__(self, api_key: str, require_auth: bool = True) -> None:
        self._api_key = api_key.encode("utf-8")
        self.require_auth = require_auth

        if require_auth and not api_key:
            logger.warning("Authentication required but no API key configured; all requests will be rejected")

    def verify(self, presented: Optional[str]) -> bool:
        if not self.require_auth:
            return True
        if not presented or not self._api_key:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self._api_key)

    def authenticate(self, presented: Optional[str]) -> bool:
        """Check the key carried by a request, logging rejections."""
        ok = self.verify(presented)
        if not ok:
            logger.warning("Authentication failed")
        return ok


class RateLimiter:
    """
    Fixed-window request limiter keyed by client.

    Each client may make ``limit`` requests per ``window_seconds``; the
    window restarts on the first request after it elapses. A limit of 0
    disables limiting.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float = 60.0,
        clock: Optional[Callable[[], float]] = None
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock or time.monotonic
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def allow(self, client_id: str) -> bool:
        """Count a request for ``client_id``; False if it is over the limit."""
        if not self.enabled:
            return True

        now = self.clock()
        with self._lock:
            started, count = self._windows.get(client_id, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0

            if count >= self.limit:
                self._windows[client_id] = (started, count)
                logger.warning("Rate limit exceeded", client=client_id, limit=self.limit)
                return False

            self._windows[client_id] = (started, count + 1)
            self._prune(now)
            return True

    def retry_after(self, client_id: str) -> int:
        """Seconds until ``client_id``'s window resets."""
        with self._lock:
            window = self._windows.get(client_id)
        if window is None:
            return 0
        remaining = self.window_seconds - (self.clock() - window[0])
        return max(0, int(remaining + 0.999))

    def _prune(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        expired = [
            client for client, (started, _) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for client in expired:
            del self._windows[client]
