"""Content store backends.

The protocol core consumes content through ``ContentStore``:
- ``InMemoryContentStore`` for development and tests
- ``RESTContentStore`` for a live WordPress site
"""

from typing import TYPE_CHECKING

from content.base import (
    CONTENT_TYPES,
    ChangeEvent,
    ContentItem,
    ContentNotFoundError,
    ContentStore,
    ContentStoreError,
)
from content.memory import InMemoryContentStore

if TYPE_CHECKING:
    from shared.config import ContentSettings


def build_content_store(settings: "ContentSettings") -> ContentStore:
    """Create the content store selected by configuration."""
    if settings.backend == "rest":
        from content.rest import RESTContentStore

        if not settings.base_url:
            raise ValueError("content.base_url is required for the rest backend")
        return RESTContentStore(
            base_url=settings.base_url,
            username=settings.username,
            application_password=settings.application_password,
            timeout=settings.timeout_seconds,
            verify_ssl=settings.verify_ssl,
        )
    return InMemoryContentStore()


__all__ = [
    "CONTENT_TYPES",
    "ChangeEvent",
    "ContentItem",
    "ContentNotFoundError",
    "ContentStore",
    "ContentStoreError",
    "InMemoryContentStore",
    "build_content_store",
]
