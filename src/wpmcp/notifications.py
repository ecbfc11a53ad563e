"""Resource subscriptions and the change notification log.

The log is a bounded FIFO of change events for subscribed resources,
read in cursor-paginated batches. Each entry carries a monotonically
increasing id, which is what clients pass back to clear entries.
"""

from typing import Any, Callable, Iterable, Optional

from shared.logging import get_logger
from shared.models import NotificationAction, NotificationEntry, NotificationPage
from wpmcp.clock import Clock, format_timestamp, utc_now
from wpmcp.cursor import NotificationPosition, decode_cursor, encode_cursor
from wpmcp.state import (
    NOTIFICATION_SEQUENCE_KEY,
    NOTIFICATIONS_KEY,
    SUBSCRIPTIONS_KEY,
    OptionStore,
)

logger = get_logger(__name__)

MAX_NOTIFICATIONS = 100
BATCH_SIZE = 20


class SubscriptionSet:
    """Set of resource URIs with at least one subscriber."""

    def __init__(self, store: OptionStore) -> None:
        self._options = store

    def subscribe(self, uri: str) -> bool:
        """Add a subscription. Returns True if the URI was not yet subscribed."""
        added = False

        def _add(uris: list[str]) -> list[str]:
            nonlocal added
            if uri not in uris:
                uris.append(uri)
                added = True
            return uris

        self._options.update(SUBSCRIPTIONS_KEY, _add, default=[])
        if added:
            logger.info("Resource subscribed", uri=uri)
        return added

    def has_subscribers(self, uri: str) -> bool:
        return uri in self._options.get(SUBSCRIPTIONS_KEY, [])

    def list(self) -> list[str]:
        return self._options.get(SUBSCRIPTIONS_KEY, [])


class NotificationLog:
    """
    Bounded, append-only log of resource changes.

    Only subscribed URIs produce entries. When the log exceeds
    ``max_entries`` the oldest entries are evicted first.
    """

    def __init__(
        self,
        store: OptionStore,
        subscriptions: SubscriptionSet,
        max_entries: int = MAX_NOTIFICATIONS,
        batch_size: int = BATCH_SIZE,
        clock: Optional[Clock] = None
    ) -> None:
        self._options = store
        self.subscriptions = subscriptions
        self.max_entries = max_entries
        self.batch_size = batch_size
        self.clock = clock or utc_now

    def store(
        self,
        uri: str,
        action: NotificationAction | str,
        data: Optional[dict[str, Any]] = None
    ) -> Optional[NotificationEntry]:
        """
        Append a change event for ``uri`` if it has subscribers.

        Returns:
            The stored entry, or None when the URI has no subscribers
        """
        if not self.subscriptions.has_subscribers(uri):
            return None

        timestamp = format_timestamp(self.clock())
        entry: Optional[NotificationEntry] = None

        # The sequence bump and the append share one write so ids stay
        # unique and in log order under concurrent writers.
        def _append(values: dict[str, Any]) -> dict[str, Any]:
            nonlocal entry
            sequence = values[NOTIFICATION_SEQUENCE_KEY] + 1
            entry = NotificationEntry(
                id=sequence,
                uri=uri,
                action=NotificationAction(action),
                timestamp=timestamp,
                data=data or {},
            )
            entries = values[NOTIFICATIONS_KEY]
            entries.append(entry.model_dump(mode="json"))
            if len(entries) > self.max_entries:
                entries = entries[-self.max_entries:]
            return {NOTIFICATION_SEQUENCE_KEY: sequence, NOTIFICATIONS_KEY: entries}

        self._options.update_many(
            {NOTIFICATION_SEQUENCE_KEY: 0, NOTIFICATIONS_KEY: []},
            _append
        )
        logger.debug("Notification stored", uri=uri, action=entry.action.value, id=entry.id)
        return entry

    def entries(self) -> list[NotificationEntry]:
        return [
            NotificationEntry.model_validate(raw)
            for raw in self._options.get(NOTIFICATIONS_KEY, [])
        ]

    def __len__(self) -> int:
        return len(self._options.get(NOTIFICATIONS_KEY, []))

    def list(self, cursor: Optional[str] = None) -> NotificationPage:
        """Return up to ``batch_size`` entries from the cursor's position."""
        entries = self.entries()
        start = decode_cursor(cursor, NotificationPosition).index

        end = min(start + self.batch_size, len(entries))
        batch = entries[start:end]

        next_cursor = None
        if end < len(entries):
            next_cursor = encode_cursor(NotificationPosition(index=end))

        return NotificationPage(notifications=batch, next_cursor=next_cursor)

    def clear(self, ids: Iterable[int]) -> int:
        """Remove the entries with the given ids. Returns the number removed."""
        targets = {int(i) for i in ids}
        if not targets:
            return 0

        removed = 0

        def _remove(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
            nonlocal removed
            kept = [e for e in entries if e.get("id") not in targets]
            removed = len(entries) - len(kept)
            return kept

        self._options.update(NOTIFICATIONS_KEY, _remove, default=[])
        logger.info("Notifications cleared", requested=len(targets), removed=removed)
        return removed

    def clear_all(self) -> int:
        """Remove every entry. Returns the number removed."""
        removed = 0

        def _drop(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
            nonlocal removed
            removed = len(entries)
            return []

        self._options.update(NOTIFICATIONS_KEY, _drop, default=[])
        logger.info("Notification log cleared", removed=removed)
        return removed


class ChangeNotifier:
    """
    Content store change hook feeding the notification log.

    Notification is best-effort: a failure here is logged and never
    propagates into the content mutation that triggered it.
    """

    def __init__(self, log: NotificationLog, uri_builder: Callable[[str, str], str]) -> None:
        self.log = log
        self.uri_builder = uri_builder

    def __call__(self, event: Any) -> None:
        try:
            uri = self.uri_builder(event.type, event.id)
            self.log.store(uri, event.action, event.data)
        except Exception as e:
            logger.error(
                "Failed to store notification",
                type=getattr(event, "type", None),
                id=getattr(event, "id", None),
                error=str(e),
                exc_info=True
            )
