"""Base classes for content store backends.

A content store holds the site's typed content (posts, pages, terms,
users, media, comments). The protocol core only reads and lists through
this interface; mutations come in through ``dispatch`` or the typed
create/update/delete calls and are announced to change hooks.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
from urllib.parse import unquote

from pydantic import BaseModel, Field

from shared.logging import get_logger
from shared.models import NotificationAction

logger = get_logger(__name__)

CONTENT_TYPES = ("posts", "pages", "categories", "tags", "users", "media", "comments")

# Native object kind per collection, as reported in change data
OBJECT_KINDS = {
    "posts": "post",
    "pages": "page",
    "media": "attachment",
    "categories": "category",
    "tags": "post_tag",
    "users": "user",
    "comments": "comment",
}

TAXONOMIES = ("categories", "tags")


def path_segments(path: str) -> list[str]:
    """Percent-decoded, non-empty segments of a route path, query excluded."""
    path = path.split("?", 1)[0].split("#", 1)[0]
    return [unquote(part) for part in path.split("/") if part]


def has_dot_segments(path: str) -> bool:
    """Whether ``path`` walks ``.`` or ``..``, literally or percent-encoded."""
    return any(part in (".", "..") for part in path_segments(path))


class ContentItem(BaseModel):
    """A single typed item as returned by a content store."""
    type: str
    id: str
    title: str = ""
    content: str = ""
    mime_type: Optional[str] = None
    data: Optional[bytes] = None
    size: Optional[int] = None
    meta: dict[str, Any] = Field(default_factory=dict)

    def to_rest(self) -> dict[str, Any]:
        """Shape returned by REST-style dispatch."""
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "content": self.content,
            **self.meta,
        }
        if self.mime_type:
            payload["mime_type"] = self.mime_type
        if self.size is not None:
            payload["size"] = self.size
        return payload


class ChangeEvent(BaseModel):
    """Announcement of a content mutation."""
    type: str
    id: str
    action: NotificationAction
    data: dict[str, Any] = Field(default_factory=dict)


ChangeHook = Callable[[ChangeEvent], None]


class ContentStoreError(Exception):
    """A content store request failed."""

    def __init__(self, message: str, status: int = 500, code: str = "content_error") -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class ContentNotFoundError(ContentStoreError):
    """The addressed item does not exist."""

    def __init__(self, item_type: str, item_id: str) -> None:
        super().__init__(
            f"{item_type} {item_id} not found",
            status=404,
            code="rest_invalid_id"
        )
        self.item_type = item_type
        self.item_id = item_id


class ContentStore(ABC):
    """
    Interface to the site's content.

    Implementations must call ``_emit`` after every successful mutation so
    registered change hooks (e.g. the notification log) see it.
    """

    def __init__(self) -> None:
        self._hooks: list[ChangeHook] = []

    def add_change_hook(self, hook: ChangeHook) -> None:
        """Register a callback invoked after each create/update/delete."""
        self._hooks.append(hook)

    def _emit(self, event: ChangeEvent) -> None:
        for hook in self._hooks:
            hook(event)

    @abstractmethod
    def list_items(self, item_type: str, offset: int, limit: int) -> list[ContentItem]:
        """Return up to ``limit`` items of a type starting at ``offset``."""

    @abstractmethod
    def get_item(self, item_type: str, item_id: str) -> Optional[ContentItem]:
        """Return an item, or None if it does not exist."""

    @abstractmethod
    def create_item(self, item_type: str, fields: dict[str, Any]) -> ContentItem:
        pass

    @abstractmethod
    def update_item(self, item_type: str, item_id: str, fields: dict[str, Any]) -> ContentItem:
        pass

    @abstractmethod
    def delete_item(self, item_type: str, item_id: str) -> ContentItem:
        pass

    @abstractmethod
    def routes(self) -> dict[str, list[str]]:
        """Return the REST route table: path -> allowed HTTP methods."""

    @abstractmethod
    def dispatch(self, method: str, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Execute a REST request against the store.

        Raises:
            ContentStoreError: If the store rejects the request
        """
