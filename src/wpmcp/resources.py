"""Resource addressing, listing and reads.

Resources are addressed as ``{scheme}://{type}/{id}`` and built on demand
from the content store. Listings walk the allowed types in a fixed order
and paginate with a composed ``(type, offset)`` cursor.
"""

import base64
import json
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from content.base import CONTENT_TYPES, ContentItem, ContentStore
from shared.logging import get_logger
from shared.models import (
    ResourceContent,
    ResourceDescriptor,
    ResourcePage,
    ResourceTemplate,
)
from wpmcp.cursor import ResourcePosition, decode_cursor, encode_cursor
from wpmcp.errors import MCPError
from wpmcp.notifications import SubscriptionSet

logger = get_logger(__name__)

PAGE_SIZE = 20
MAX_INLINE_BYTES = 1024 * 1024
DESCRIPTION_WORDS = 20

TEMPLATE_INFO = {
    "posts": ("WordPress Post", "Access a specific post by ID", "text/html"),
    "pages": ("WordPress Page", "Access a specific page by ID", "text/html"),
    "categories": ("WordPress Category", "Access a specific category by ID", "application/json"),
    "tags": ("WordPress Tag", "Access a specific tag by ID", "application/json"),
    "users": ("WordPress User", "Access a specific user by ID", "application/json"),
    "media": ("WordPress Media", "Access a specific media item by ID", "application/octet-stream"),
    "comments": ("WordPress Comment", "Access a specific comment by ID", "application/json"),
}

_TAG_RE = re.compile(r"<[^>]+>")


def trim_words(text: str, limit: int = DESCRIPTION_WORDS) -> str:
    """Strip markup and cut ``text`` to ``limit`` words."""
    words = _TAG_RE.sub(" ", text or "").split()
    if len(words) <= limit:
        return " ".join(words)
    return " ".join(words[:limit]) + "..."


class ResourceAddress(BaseModel):
    """Parsed resource URI."""
    model_config = ConfigDict(frozen=True)

    type: str
    id: str


class ResourceManager:
    """
    Lists, reads and subscribes to resources backed by a content store.

    Only types in ``allowed_types`` are listed or readable. Listing order
    follows ``CONTENT_TYPES`` regardless of the allow-list's order.
    """

    def __init__(
        self,
        store: ContentStore,
        subscriptions: SubscriptionSet,
        allowed_types: list[str],
        scheme: str = "wp",
        page_size: int = PAGE_SIZE
    ) -> None:
        self.store = store
        self.subscriptions = subscriptions
        self.allowed_types = list(allowed_types)
        self.scheme = scheme
        self.page_size = page_size
        self._uri_re = re.compile(
            rf"^{re.escape(scheme)}://(?P<type>[a-z][a-z0-9_-]*)/(?P<id>[^/\s]+)/?$"
        )

    @property
    def type_order(self) -> list[str]:
        return [t for t in CONTENT_TYPES if t in self.allowed_types]

    def build_uri(self, item_type: str, item_id: str) -> str:
        return f"{self.scheme}://{item_type}/{item_id}"

    def parse_uri(self, uri: Any) -> ResourceAddress:
        """
        Split a resource URI into type and id.

        Raises:
            MCPError: ``invalid_uri`` if the URI is not ``{scheme}://{type}/{id}``
        """
        match = self._uri_re.match(uri) if isinstance(uri, str) else None
        if not match:
            raise MCPError("invalid_uri", "Invalid resource URI format", {"uri": uri})
        return ResourceAddress(type=match.group("type"), id=match.group("id"))

    def _check_allowed(self, address: ResourceAddress) -> None:
        if address.type not in self.allowed_types:
            raise MCPError(
                "forbidden_resource",
                "Access to this resource type is not allowed",
                {"type": address.type}
            )

    # Listing

    def _describe(self, item: ContentItem) -> ResourceDescriptor:
        uri = self.build_uri(item.type, item.id)

        if item.type in ("posts", "pages"):
            return ResourceDescriptor(
                uri=uri, name=item.title, description=trim_words(item.content), mime_type="text/html"
            )
        if item.type == "users":
            return ResourceDescriptor(uri=uri, name=item.title, description="User profile")
        if item.type == "media":
            return ResourceDescriptor(
                uri=uri,
                name=item.title,
                description=item.content,
                mime_type=item.mime_type or "application/octet-stream",
                size=item.size,
            )
        if item.type == "comments":
            return ResourceDescriptor(uri=uri, name=item.title, description=trim_words(item.content))
        return ResourceDescriptor(uri=uri, name=item.title, description=item.content)

    def list(self, cursor: Optional[str] = None) -> ResourcePage:
        """
        Return one page of resource descriptors.

        Args:
            cursor: Opaque cursor from a previous page; malformed cursors
                start from the beginning

        Returns:
            Page of descriptors with ``nextCursor`` set while types remain
        """
        position = decode_cursor(cursor, ResourcePosition)
        types = self.type_order

        type_index = position.type_index
        offset = position.offset
        resources: list[ResourceDescriptor] = []

        while type_index < len(types) and len(resources) < self.page_size:
            wanted = self.page_size - len(resources)
            items = self.store.list_items(types[type_index], offset, wanted)
            resources.extend(self._describe(item) for item in items)

            if len(items) < wanted:
                type_index += 1
                offset = 0
            else:
                offset += len(items)

        next_cursor = None
        if type_index < len(types):
            next_cursor = encode_cursor(ResourcePosition(type_index=type_index, offset=offset))

        return ResourcePage(resources=resources, next_cursor=next_cursor)

    def list_templates(self) -> dict[str, Any]:
        templates = []
        for item_type in self.type_order:
            name, description, mime_type = TEMPLATE_INFO[item_type]
            templates.append(ResourceTemplate(
                uri_template=f"{self.scheme}://{item_type}/{{id}}",
                name=name,
                description=description,
                mime_type=mime_type,
            ))
        return {"resourceTemplates": templates}

    # Reading

    def read(self, uri: Any) -> dict[str, Any]:
        """
        Read a single resource.

        Raises:
            MCPError: ``invalid_uri``, ``forbidden_resource`` or ``resource_not_found``
        """
        address = self.parse_uri(uri)
        self._check_allowed(address)

        item = self.store.get_item(address.type, address.id)
        if item is None:
            raise MCPError(
                "resource_not_found",
                f"{self._label(address.type)} not found",
                {"uri": uri}
            )

        uri = self.build_uri(address.type, address.id)
        if item.type in ("posts", "pages"):
            content = ResourceContent(uri=uri, mime_type="text/html", text=self._render_post(item))
        elif item.type == "media":
            content = self._render_media(uri, item)
        else:
            content = ResourceContent(
                uri=uri,
                mime_type="application/json",
                text=json.dumps(self._record(item), indent=4, default=str),
            )

        logger.debug("Resource read", uri=uri, mime_type=content.mime_type)
        return {"contents": [content]}

    @staticmethod
    def _label(item_type: str) -> str:
        info = TEMPLATE_INFO.get(item_type)
        return info[0].split()[-1] if info else "Resource"

    @staticmethod
    def _render_post(item: ContentItem) -> str:
        date = item.meta.get("date", "")
        author = item.meta.get("author_name", item.meta.get("author", ""))
        return f"# {item.title}\n\nDate: {date}\nAuthor: {author}\n\n{item.content}"

    @staticmethod
    def _record(item: ContentItem) -> dict[str, Any]:
        if item.type == "users":
            return {"id": item.id, "name": item.title, "bio": item.content, **item.meta}
        if item.type == "comments":
            return {"id": item.id, "author": item.title, "content": item.content, **item.meta}
        return {"id": item.id, "name": item.title, "description": item.content, **item.meta}

    def _render_media(self, uri: str, item: ContentItem) -> ResourceContent:
        mime_type = item.mime_type or "application/octet-stream"

        if mime_type.startswith("text/") and item.data is not None:
            return ResourceContent(
                uri=uri, mime_type=mime_type, text=item.data.decode("utf-8", errors="replace")
            )

        size = item.size if item.size is not None else len(item.data or b"")
        if item.data is not None and size <= MAX_INLINE_BYTES:
            return ResourceContent(
                uri=uri, mime_type=mime_type, blob=base64.b64encode(item.data).decode("ascii")
            )

        metadata = {
            "id": item.id,
            "title": item.title,
            "description": item.content,
            "caption": item.meta.get("caption", ""),
            "alt": item.meta.get("alt", ""),
            "mime_type": mime_type,
            "size": size,
            "url": item.meta.get("source_url"),
            "dimensions": item.meta.get("dimensions"),
        }
        return ResourceContent(
            uri=uri, mime_type="application/json", text=json.dumps(metadata, indent=4, default=str)
        )

    # Subscriptions

    def subscribe(self, uri: Any) -> dict[str, Any]:
        """Subscribe to change notifications for a resource."""
        address = self.parse_uri(uri)
        self._check_allowed(address)
        uri = self.build_uri(address.type, address.id)
        self.subscriptions.subscribe(uri)
        return {"subscribed": True, "uri": uri}
