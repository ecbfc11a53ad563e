"""REST endpoint discovery and generic endpoint calls.

Exposes the content store's route table, limited to the ``wp/v2`` and
``wpmcp/v1`` namespaces, and forwards calls to it. Calls into ``/wp/v2/``
are restricted to the allowed resource types.
"""

from typing import Any, Optional

from content.base import ContentStore, ContentStoreError, has_dot_segments, path_segments
from shared.logging import get_logger
from shared.models import EndpointDescriptor
from wpmcp.errors import MCPError

logger = get_logger(__name__)

ALLOWED_NAMESPACES = ("wp/v2", "wpmcp/v1")
HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")


def namespace_of(path: str) -> str:
    """Namespace of a route: its first two segments, or its only segment."""
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}"
    return parts[0] if parts else ""


def endpoint_type(endpoint: str) -> str:
    """Resource type addressed by a ``/wp/v2/{type}`` endpoint, else empty."""
    parts = path_segments(endpoint)
    if len(parts) >= 3 and parts[0] == "wp" and parts[1] == "v2":
        return parts[2]
    return ""


class EndpointGateway:
    """Discovers and calls REST endpoints of a content store."""

    def __init__(self, store: ContentStore, allowed_types: list[str]) -> None:
        self.store = store
        self.allowed_types = list(allowed_types)

    def discover(self) -> list[EndpointDescriptor]:
        endpoints = []
        for path, methods in self.store.routes().items():
            namespace = namespace_of(path)
            if namespace not in ALLOWED_NAMESPACES or not methods:
                continue
            unique = list(dict.fromkeys(m.upper() for m in methods))
            endpoints.append(EndpointDescriptor(path=path, namespace=namespace, methods=unique))

        logger.debug("Endpoints discovered", count=len(endpoints))
        return endpoints

    def call(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[dict[str, Any]] = None
    ) -> Any:
        """
        Execute a REST request against the content store.

        Args:
            endpoint: Route path, with or without the leading slash
            method: HTTP verb
            params: Query parameters for GET, body fields otherwise

        Returns:
            The decoded response data

        Raises:
            MCPError: ``forbidden_endpoint`` for a disallowed type or a path
                with ``.`` or ``..`` segments, ``api_error``
                when the store rejects the request
        """
        if not endpoint:
            raise MCPError("missing_endpoint", "Missing endpoint parameter")
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        method = (method or "GET").upper()

        if has_dot_segments(endpoint):
            raise MCPError(
                "forbidden_endpoint",
                "Relative path segments are not allowed",
                {"endpoint": endpoint}
            )

        if path_segments(endpoint)[:2] == ["wp", "v2"]:
            item_type = endpoint_type(endpoint)
            if item_type not in self.allowed_types:
                raise MCPError(
                    "forbidden_endpoint",
                    "Access to this endpoint type is not allowed",
                    {"endpoint": endpoint, "type": item_type}
                )

        logger.info("Calling endpoint", endpoint=endpoint, method=method)
        try:
            return self.store.dispatch(method, endpoint, params or {})
        except ContentStoreError as e:
            raise MCPError(
                "api_error",
                f"API returned error: {e.message}",
                {"status": e.status, "error": e.code}
            ) from e
