"""Persisted key-value state shared across calls.

Notifications, subscriptions, consent nonces and the consent log all live
in an option store. Every read-modify-write goes through ``update``, which
runs under the store's mutex so concurrent calls cannot lose updates.
"""

import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional

from shared.logging import get_logger

logger = get_logger(__name__)


# Option keys
NOTIFICATIONS_KEY = "wpmcp_resource_notifications"
NOTIFICATION_SEQUENCE_KEY = "wpmcp_notification_sequence"
SUBSCRIPTIONS_KEY = "wpmcp_resource_subscriptions"
CONSENT_NONCES_KEY = "wpmcp_consent_nonces"
CONSENT_LOGS_KEY = "wpmcp_consent_logs"


class OptionStore(ABC):
    """Key-value store with atomic read-modify-write."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the stored value, or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Replace the stored value."""

    @abstractmethod
    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Atomically replace a value with ``fn(current)``.

        ``fn`` receives a private copy of the current value (or ``default``)
        and returns the new value, which is stored and returned.
        """

    @abstractmethod
    def update_many(
        self,
        defaults: dict[str, Any],
        fn: Callable[[dict[str, Any]], dict[str, Any]]
    ) -> dict[str, Any]:
        """
        Atomically replace several values with ``fn(current)``.

        ``fn`` receives private copies of the current values of the keys in
        ``defaults`` (each falling back to its default) and returns the new
        values, all of which are stored before any other writer runs.
        """

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""


class MemoryOptionStore(OptionStore):
    """In-process option store guarded by a single re-entrant lock."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return copy.deepcopy(default)
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
            self._persist()

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        with self._lock:
            current = copy.deepcopy(self._data.get(key, default))
            new_value = fn(current)
            self._data[key] = copy.deepcopy(new_value)
            self._persist()
            return new_value

    def update_many(
        self,
        defaults: dict[str, Any],
        fn: Callable[[dict[str, Any]], dict[str, Any]]
    ) -> dict[str, Any]:
        with self._lock:
            current = {
                key: copy.deepcopy(self._data.get(key, default))
                for key, default in defaults.items()
            }
            new_values = fn(current)
            for key, value in new_values.items():
                self._data[key] = copy.deepcopy(value)
            self._persist()
            return new_values

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            self._persist()
            return True

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held."""


class JSONFileOptionStore(MemoryOptionStore):
    """
    Option store persisted to a JSON file.

    The whole document is rewritten after each mutation via a temporary
    file and ``os.replace`` so readers never observe a partial write.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Corrupt state file, starting empty", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def create_option_store(state_path: Optional[str] = None) -> OptionStore:
    """Create the option store for the configured state path."""
    if state_path:
        logger.info("Using file-backed option store", path=state_path)
        return JSONFileOptionStore(state_path)
    return MemoryOptionStore()
