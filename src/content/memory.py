"""In-memory content store.

Mirrors the shape of a WordPress REST API (``/wp/v2/{type}`` collections
and items) over plain dictionaries. Used for development and tests.
"""

import re
import threading
from typing import Any, Optional

from shared.logging import get_logger
from shared.models import NotificationAction
from content.base import (
    CONTENT_TYPES,
    OBJECT_KINDS,
    TAXONOMIES,
    ChangeEvent,
    ContentItem,
    ContentNotFoundError,
    ContentStore,
    ContentStoreError,
)

logger = get_logger(__name__)

ITEM_ROUTE = r"(?P<id>[\d]+)"
ROUTE_PATTERN = re.compile(r"^/wp/v2/(?P<type>[\w-]+)(?:/(?P<id>[^/]+))?/?$")

EXTRA_ROUTES = {
    "/": ["GET"],
    "/oembed/1.0/embed": ["GET"],
    "/wpmcp/v1/data": ["POST"],
    "/wpmcp/v1/notifications": ["GET"],
    "/wpmcp/v1/consent": ["POST"],
}


class InMemoryContentStore(ContentStore):
    """
    Content store backed by dictionaries.

    Item ids are drawn from a single counter shared by all types, as in
    WordPress where posts, pages and attachments share an id space.
    """

    def __init__(self) -> None:
        super().__init__()
        self._items: dict[str, dict[str, ContentItem]] = {t: {} for t in CONTENT_TYPES}
        self._next_id = 1
        self._lock = threading.RLock()

    def _collection(self, item_type: str) -> dict[str, ContentItem]:
        collection = self._items.get(item_type)
        if collection is None:
            raise ContentStoreError(
                f"Unknown content type '{item_type}'",
                status=404,
                code="rest_no_route"
            )
        return collection

    def list_items(self, item_type: str, offset: int, limit: int) -> list[ContentItem]:
        with self._lock:
            items = list(self._collection(item_type).values())
        return items[offset:offset + limit]

    def get_item(self, item_type: str, item_id: str) -> Optional[ContentItem]:
        with self._lock:
            return self._collection(item_type).get(str(item_id))

    def _build_item(self, item_type: str, item_id: str, fields: dict[str, Any]) -> ContentItem:
        fields = dict(fields)
        title = fields.pop("title", None) or fields.pop("name", "") or ""
        content = fields.pop("content", None) or fields.pop("description", "") or ""
        mime_type = fields.pop("mime_type", None)
        data = fields.pop("data", None)
        if isinstance(data, str):
            data = data.encode("utf-8")
        size = fields.pop("size", None)
        if size is None and data is not None:
            size = len(data)

        return ContentItem(
            type=item_type,
            id=item_id,
            title=str(title),
            content=str(content),
            mime_type=mime_type,
            data=data,
            size=size,
            meta=fields,
        )

    def _change_data(self, item: ContentItem, action: NotificationAction) -> dict[str, Any]:
        kind = OBJECT_KINDS.get(item.type, item.type)
        if action == NotificationAction.DELETED:
            return {"id": item.id, "type": kind}
        if item.type in TAXONOMIES:
            return {"name": item.title, "taxonomy": kind}
        if item.type == "users":
            return {"name": item.title}
        return {"title": item.title, "type": kind}

    def create_item(self, item_type: str, fields: dict[str, Any]) -> ContentItem:
        with self._lock:
            collection = self._collection(item_type)
            item_id = str(self._next_id)
            self._next_id += 1
            item = self._build_item(item_type, item_id, fields)
            collection[item_id] = item

        logger.debug("Content created", type=item_type, id=item_id)
        self._emit(ChangeEvent(
            type=item_type,
            id=item_id,
            action=NotificationAction.CREATED,
            data=self._change_data(item, NotificationAction.CREATED),
        ))
        return item

    def update_item(self, item_type: str, item_id: str, fields: dict[str, Any]) -> ContentItem:
        item_id = str(item_id)
        with self._lock:
            collection = self._collection(item_type)
            current = collection.get(item_id)
            if current is None:
                raise ContentNotFoundError(item_type, item_id)

            merged: dict[str, Any] = {
                "title": current.title,
                "content": current.content,
                "mime_type": current.mime_type,
                "data": current.data,
                **current.meta,
                **fields,
            }
            if "data" in fields:
                merged.pop("size", None)
            elif current.size is not None:
                merged.setdefault("size", current.size)
            item = self._build_item(item_type, item_id, merged)
            collection[item_id] = item

        logger.debug("Content updated", type=item_type, id=item_id)
        self._emit(ChangeEvent(
            type=item_type,
            id=item_id,
            action=NotificationAction.UPDATED,
            data=self._change_data(item, NotificationAction.UPDATED),
        ))
        return item

    def delete_item(self, item_type: str, item_id: str) -> ContentItem:
        item_id = str(item_id)
        with self._lock:
            collection = self._collection(item_type)
            item = collection.pop(item_id, None)
            if item is None:
                raise ContentNotFoundError(item_type, item_id)

        logger.debug("Content deleted", type=item_type, id=item_id)
        self._emit(ChangeEvent(
            type=item_type,
            id=item_id,
            action=NotificationAction.DELETED,
            data=self._change_data(item, NotificationAction.DELETED),
        ))
        return item

    def routes(self) -> dict[str, list[str]]:
        table: dict[str, list[str]] = {}
        for item_type in CONTENT_TYPES:
            table[f"/wp/v2/{item_type}"] = ["GET", "POST"]
            table[f"/wp/v2/{item_type}/{ITEM_ROUTE}"] = ["GET", "POST", "PUT", "PATCH", "DELETE"]
        table.update(EXTRA_ROUTES)
        return table

    def dispatch(self, method: str, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        method = method.upper()
        params = dict(params or {})

        match = ROUTE_PATTERN.match(path)
        if not match or match.group("type") not in self._items:
            raise ContentStoreError(
                "No route was found matching the URL and request method.",
                status=404,
                code="rest_no_route"
            )

        item_type = match.group("type")
        item_id = match.group("id")

        if item_id is None:
            if method == "GET":
                return self._list_rest(item_type, params)
            if method == "POST":
                return self.create_item(item_type, params).to_rest()
        else:
            if method == "GET":
                item = self.get_item(item_type, item_id)
                if item is None:
                    raise ContentNotFoundError(item_type, item_id)
                return item.to_rest()
            if method in ("POST", "PUT", "PATCH"):
                return self.update_item(item_type, item_id, params).to_rest()
            if method == "DELETE":
                previous = self.delete_item(item_type, item_id)
                return {"deleted": True, "previous": previous.to_rest()}

        raise ContentStoreError(
            "No route was found matching the URL and request method.",
            status=404,
            code="rest_no_route"
        )

    def _list_rest(self, item_type: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            per_page = max(1, min(int(params.get("per_page", 10)), 100))
            page = max(1, int(params.get("page", 1)))
            offset = int(params["offset"]) if "offset" in params else (page - 1) * per_page
        except (TypeError, ValueError):
            raise ContentStoreError(
                "Invalid pagination parameter",
                status=400,
                code="rest_invalid_param"
            )
        return [item.to_rest() for item in self.list_items(item_type, max(offset, 0), per_page)]
