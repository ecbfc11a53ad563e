"""Content store backed by a remote WordPress REST API.

Talks to ``{base_url}/wp-json`` with httpx. Idempotent reads are retried on
transport errors; mutations are sent once and announced to change hooks
after the site accepts them.
"""

import re
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.logging import get_logger
from shared.models import NotificationAction
from content.base import (
    OBJECT_KINDS,
    TAXONOMIES,
    ChangeEvent,
    ContentItem,
    ContentNotFoundError,
    ContentStore,
    ContentStoreError,
    has_dot_segments,
)

logger = get_logger(__name__)

ROUTE_PATTERN = re.compile(r"^/wp/v2/(?P<type>[\w-]+)(?:/(?P<id>\d+))?/?$")
DEFAULT_MAX_INLINE_BYTES = 1024 * 1024


def _rendered(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("rendered", ""))
    return "" if value is None else str(value)


class RESTContentStore(ContentStore):
    """
    Content store for a live WordPress site.

    Authentication uses an application password (HTTP basic auth) when
    credentials are configured.
    """

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        application_password: Optional[str] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        max_inline_bytes: int = DEFAULT_MAX_INLINE_BYTES,
        client: Optional[httpx.Client] = None
    ) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.max_inline_bytes = max_inline_bytes

        auth = None
        if username and application_password:
            auth = httpx.BasicAuth(username, application_password)

        self._client = client or httpx.Client(
            base_url=f"{self.base_url}/wp-json",
            timeout=timeout,
            verify=verify_ssl,
            auth=auth,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True
    )
    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        return self._client.get(path, params=params)

    def _send(self, method: str, path: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        if method == "GET":
            return self._get(path, params)
        if method == "DELETE":
            return self._client.request(method, path, params=params)
        return self._client.request(method, path, json=params or {})

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        message = response.reason_phrase or "Request failed"
        code = "rest_error"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = str(body.get("message", message))
            code = str(body.get("code", code))
        raise ContentStoreError(message, status=response.status_code, code=code)

    def _to_item(self, item_type: str, obj: dict[str, Any]) -> ContentItem:
        item_id = str(obj.get("id", ""))

        if item_type in TAXONOMIES:
            return ContentItem(
                type=item_type,
                id=item_id,
                title=str(obj.get("name", "")),
                content=str(obj.get("description", "")),
                meta={k: obj[k] for k in ("slug", "count", "link") if k in obj},
            )

        if item_type == "users":
            return ContentItem(
                type=item_type,
                id=item_id,
                title=str(obj.get("name", "")),
                content=str(obj.get("description", "")),
                meta={k: obj[k] for k in ("slug", "link", "url") if k in obj},
            )

        if item_type == "comments":
            return ContentItem(
                type=item_type,
                id=item_id,
                title=str(obj.get("author_name", "")),
                content=_rendered(obj.get("content")),
                meta={k: obj[k] for k in ("post", "date", "status", "link") if k in obj},
            )

        if item_type == "media":
            details = obj.get("media_details") or {}
            size = details.get("filesize") if isinstance(details, dict) else None
            return ContentItem(
                type=item_type,
                id=item_id,
                title=_rendered(obj.get("title")),
                content=_rendered(obj.get("description")),
                mime_type=obj.get("mime_type"),
                size=size,
                meta={
                    "source_url": obj.get("source_url"),
                    "alt": obj.get("alt_text", ""),
                    "caption": _rendered(obj.get("caption")),
                    "dimensions": details,
                },
            )

        return ContentItem(
            type=item_type,
            id=item_id,
            title=_rendered(obj.get("title")),
            content=_rendered(obj.get("content")),
            meta={k: obj[k] for k in ("date", "author", "status", "link") if k in obj},
        )

    def list_items(self, item_type: str, offset: int, limit: int) -> list[ContentItem]:
        if limit <= 0:
            return []
        response = self._get(f"/wp/v2/{item_type}", {"per_page": limit, "offset": offset})
        if response.status_code == 400 and "invalid_page_number" in response.text:
            return []
        self._raise_for_error(response)
        return [self._to_item(item_type, obj) for obj in response.json()]

    def get_item(self, item_type: str, item_id: str) -> Optional[ContentItem]:
        if not str(item_id).isdigit() or has_dot_segments(item_type):
            return None
        response = self._get(f"/wp/v2/{item_type}/{item_id}")
        if response.status_code == 404:
            return None
        self._raise_for_error(response)
        item = self._to_item(item_type, response.json())

        if item_type == "media":
            item = self._attach_media_data(item)
        return item

    def _attach_media_data(self, item: ContentItem) -> ContentItem:
        source_url = item.meta.get("source_url")
        if not source_url:
            return item
        is_text = (item.mime_type or "").startswith("text/")
        if not is_text and item.size is not None and item.size > self.max_inline_bytes:
            return item

        response = self._get(source_url)
        self._raise_for_error(response)
        data = response.content
        return item.model_copy(update={"data": data, "size": len(data)})

    def create_item(self, item_type: str, fields: dict[str, Any]) -> ContentItem:
        created = self.dispatch("POST", f"/wp/v2/{item_type}", fields)
        return self._to_item(item_type, created)

    def update_item(self, item_type: str, item_id: str, fields: dict[str, Any]) -> ContentItem:
        updated = self.dispatch("POST", f"/wp/v2/{item_type}/{item_id}", fields)
        return self._to_item(item_type, updated)

    def delete_item(self, item_type: str, item_id: str) -> ContentItem:
        result = self.dispatch("DELETE", f"/wp/v2/{item_type}/{item_id}", {"force": "true"})
        previous = result.get("previous", result) if isinstance(result, dict) else {}
        return self._to_item(item_type, previous or {"id": item_id})

    def routes(self) -> dict[str, list[str]]:
        response = self._get("/")
        self._raise_for_error(response)
        routes = response.json().get("routes", {})

        table: dict[str, list[str]] = {}
        for path, spec in routes.items():
            methods = spec.get("methods", []) if isinstance(spec, dict) else []
            table[path] = list(methods)
        return table

    def dispatch(self, method: str, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        method = method.upper()
        if has_dot_segments(path):
            raise ContentStoreError(
                "Relative path segments are not allowed", status=400, code="rest_invalid_path"
            )
        response = self._send(method, path, params)
        if response.status_code == 404 and method != "GET":
            match = ROUTE_PATTERN.match(path)
            if match and match.group("id"):
                raise ContentNotFoundError(match.group("type"), match.group("id"))
        self._raise_for_error(response)

        try:
            result = response.json()
        except ValueError:
            result = response.text

        if method != "GET":
            self._announce(method, path, result)
        return result

    def _announce(self, method: str, path: str, result: Any) -> None:
        match = ROUTE_PATTERN.match(path)
        if not match or not isinstance(result, dict):
            return

        item_type = match.group("type")
        kind = OBJECT_KINDS.get(item_type, item_type)

        if method == "DELETE":
            action = NotificationAction.DELETED
            item_id = match.group("id") or str(result.get("id", ""))
            data = {"id": item_id, "type": kind}
        else:
            action = NotificationAction.UPDATED if match.group("id") else NotificationAction.CREATED
            item_id = match.group("id") or str(result.get("id", ""))
            item = self._to_item(item_type, result)
            if item_type in TAXONOMIES:
                data = {"name": item.title, "taxonomy": kind}
            else:
                data = {"title": item.title, "type": kind}

        if not item_id:
            return
        self._emit(ChangeEvent(type=item_type, id=item_id, action=action, data=data))
