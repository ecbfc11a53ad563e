"""Client for the wpmcp protocol server.

Wraps the HTTP surface: envelopes go to ``/wpmcp/v1/data``, consent is
recorded at ``/wpmcp/v1/consent`` and notifications are read from
``/wpmcp/v1/notifications``. Error envelopes are raised as exceptions.
"""

import inspect
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.logging import get_logger

logger = get_logger(__name__)

CONSENT_REQUIRED_CODE = -32005

DATA_PATH = "/wpmcp/v1/data"
CONSENT_PATH = "/wpmcp/v1/consent"
NOTIFICATIONS_PATH = "/wpmcp/v1/notifications"

Approver = Callable[[dict[str, Any]], Union[bool, Awaitable[bool]]]


class WPMCPClientError(Exception):
    """Base exception for wpmcp client errors."""
    pass


class WPMCPConnectionError(WPMCPClientError):
    """Connection to the server failed."""
    pass


class WPMCPAuthError(WPMCPClientError):
    """The server rejected the API key."""
    pass


class WPMCPToolError(WPMCPClientError):
    """The server answered with an error envelope."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


class ConsentRequiredError(WPMCPToolError):
    """The call needs user consent; ``request`` describes what to approve."""

    @property
    def request(self) -> dict[str, Any]:
        return self.data if isinstance(self.data, dict) else {}


def _raise_for_envelope(envelope: Any) -> Any:
    if not isinstance(envelope, dict) or envelope.get("kind") not in ("success", "error"):
        raise WPMCPClientError(f"Unexpected response: {envelope!r}")

    if envelope["kind"] == "success":
        return envelope.get("data")

    error = envelope.get("error") or {}
    code = error.get("code", 0)
    message = error.get("message", "Unknown error")
    data = error.get("data")
    if code == CONSENT_REQUIRED_CODE:
        raise ConsentRequiredError(code, message, data)
    raise WPMCPToolError(code, message, data)


class WPMCPClient:
    """
    Client for a wpmcp server.

    Provides methods for:
    - Describing the server and its tools
    - Invoking tools, with an optional consent round-trip
    - Walking resources and notifications

    Usable as an async context manager.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8001",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Initialize the client.

        Args:
            server_url: Server base URL
            api_key: Shared API key sent as ``X-API-Key``
            timeout: Request timeout in seconds
            transport: Custom httpx transport (e.g. ``httpx.ASGITransport``)
        """
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.server_url,
                timeout=self.timeout,
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WPMCPClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            client = await self._get_client()
            response = await client.request(method, path, **kwargs)
        except httpx.ConnectError as e:
            raise WPMCPConnectionError(f"Cannot connect to wpmcp server: {e}")

        if response.status_code == 401:
            raise WPMCPAuthError("Authentication failed")

        try:
            return response.json()
        except ValueError:
            raise WPMCPClientError(
                f"Invalid response from server (HTTP {response.status_code})"
            )

    @retry(
        retry=retry_if_exception_type(WPMCPConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True
    )
    async def health_check(self) -> dict[str, Any]:
        """
        Check server health.

        Returns:
            Health status including version and readable resource types

        Raises:
            WPMCPConnectionError: If server is unreachable
        """
        try:
            client = await self._get_client()
            response = await client.get("/health")
            response.raise_for_status()
            return response.json()
        except httpx.ConnectError as e:
            raise WPMCPConnectionError(f"Cannot connect to wpmcp server: {e}")
        except httpx.HTTPStatusError as e:
            raise WPMCPClientError(f"Health check failed: {e}")

    async def describe(self) -> dict[str, Any]:
        """Fetch the server description and tool definitions."""
        envelope = await self._request("POST", DATA_PATH, json={"kind": "describe"})
        return _raise_for_envelope(envelope)

    async def invoke(
        self,
        name: str,
        arguments: Optional[dict[str, Any]] = None,
        consent_token: Optional[str] = None
    ) -> Any:
        """
        Invoke a tool.

        Args:
            name: Tool name
            arguments: Tool arguments
            consent_token: Token for consent-gated calls

        Returns:
            The ``data`` of the success envelope

        Raises:
            ConsentRequiredError: If the call needs consent
            WPMCPToolError: For any other error envelope
        """
        payload: dict[str, Any] = {"kind": "invoke", "name": name, "arguments": arguments or {}}
        if consent_token:
            payload["consentToken"] = consent_token

        logger.debug("Invoking tool", tool=name)
        envelope = await self._request("POST", DATA_PATH, json=payload)
        return _raise_for_envelope(envelope)

    async def request_consent(
        self,
        tool: str,
        arguments: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> dict[str, Any]:
        """Record consent for a tool and return ``{success, token, expires_in}``."""
        body: dict[str, Any] = {
            "tool": tool,
            "session_id": session_id or str(uuid.uuid4()),
            "arguments": arguments or {},
        }
        if user_id:
            body["user_id"] = user_id

        result = await self._request("POST", CONSENT_PATH, json=body)
        if isinstance(result, dict) and result.get("kind") == "error":
            _raise_for_envelope(result)
        return result

    async def invoke_with_consent(
        self,
        name: str,
        arguments: Optional[dict[str, Any]] = None,
        approver: Optional[Approver] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Any:
        """
        Invoke a tool, asking ``approver`` for consent when the server requires it.

        The approver receives the server's consent request and returns
        whether the user approved (sync or async). On approval the consent
        is recorded and the call is retried with the issued token.

        Raises:
            ConsentRequiredError: If there is no approver or it declines
        """
        try:
            return await self.invoke(name, arguments)
        except ConsentRequiredError as e:
            if approver is None:
                raise

            approved = approver(e.request)
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                logger.info("Consent declined", tool=name)
                raise

            consent = await self.request_consent(name, arguments, session_id, user_id)
            return await self.invoke(name, arguments, consent_token=consent["token"])

    # Convenience wrappers

    async def discover_endpoints(self) -> list[dict[str, Any]]:
        return await self.invoke("wp_discover_endpoints")

    async def call_endpoint(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[dict[str, Any]] = None,
        consent_token: Optional[str] = None
    ) -> Any:
        arguments = {"endpoint": endpoint, "method": method, "params": params or {}}
        return await self.invoke("wp_call_endpoint", arguments, consent_token)

    async def list_resources(self, cursor: Optional[str] = None) -> dict[str, Any]:
        return await self.invoke("resources/list", {"cursor": cursor} if cursor else {})

    async def iter_resources(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every resource descriptor, following cursors."""
        cursor = None
        while True:
            page = await self.list_resources(cursor)
            for resource in page.get("resources", []):
                yield resource
            cursor = page.get("nextCursor")
            if not cursor:
                break

    async def read_resource(self, uri: str) -> dict[str, Any]:
        return await self.invoke("resources/read", {"uri": uri})

    async def list_resource_templates(self) -> list[dict[str, Any]]:
        result = await self.invoke("resources/templates/list")
        return result.get("resourceTemplates", [])

    async def subscribe(self, uri: str, consent_token: Optional[str] = None) -> dict[str, Any]:
        return await self.invoke("resources/subscribe", {"uri": uri}, consent_token)

    async def list_notifications(self, cursor: Optional[str] = None) -> dict[str, Any]:
        """Read one batch from the notification queue."""
        params = {"cursor": cursor} if cursor else None
        result = await self._request("GET", NOTIFICATIONS_PATH, params=params)
        if isinstance(result, dict) and result.get("kind") == "error":
            _raise_for_envelope(result)
        return result

    async def clear_notifications(
        self,
        ids: Optional[list[int]] = None,
        clear_all: bool = False
    ) -> int:
        arguments: dict[str, Any] = {"all": True} if clear_all else {"ids": list(ids or [])}
        result = await self.invoke("resources/notifications/clear", arguments)
        return result["cleared"]

    async def list_prompts(self) -> list[dict[str, Any]]:
        result = await self.invoke("prompts/list")
        return result.get("prompts", [])

    async def get_prompt(self, name: str, arguments: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self.invoke("prompts/get", {"name": name, "arguments": arguments or {}})

    async def complete(self, tool: str, argument: str, partial: str = "") -> list[dict[str, Any]]:
        result = await self.invoke(
            "completion/complete",
            {"tool": tool, "argument": argument, "partial": partial}
        )
        return result.get("suggestions", [])
