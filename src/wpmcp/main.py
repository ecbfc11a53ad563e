"""wpmcp server - FastAPI application.

Thin HTTP glue around the dispatcher: one route takes protocol envelopes,
one serves the notification queue and one records consent decisions.
Every route except ``/health`` requires the shared API key.
"""

import json
import uuid
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from content import ContentStore, build_content_store
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from shared.models import ExecutionContext, to_jsonable
from wpmcp import __version__
from wpmcp.audit import ConsentAuditLog
from wpmcp.auth import APIKeyAuth, RateLimiter, api_key_header, extract_api_key
from wpmcp.dispatcher import create_dispatcher
from wpmcp.errors import MCPError, normalize
from wpmcp.state import OptionStore, create_option_store

logger = get_logger(__name__)


# Request/Response Models
class ConsentRecordRequest(BaseModel):
    """Consent granted by a user for a tool call."""
    tool: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None


class ConsentRecordResponse(BaseModel):
    """Token issued for a recorded consent."""
    success: bool
    token: str
    expires_in: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    resource_types: list[str]


class RequestRejected(Exception):
    """Request refused before reaching a route handler."""

    def __init__(self, status_code: int, code: str, message: str, data: Any = None, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.data = data
        self.headers = headers


def _error_response(status_code: int, code: str, message: str, data: Any = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=normalize(MCPError(code, message, data)),
        headers=headers,
    )


async def _read_json(request: Request) -> tuple[bool, Any]:
    raw = await request.body()
    try:
        return True, json.loads(raw)
    except ValueError:
        return False, None


def create_app(
    settings: Optional[Settings] = None,
    content_store: Optional[ContentStore] = None,
    option_store: Optional[OptionStore] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (loaded from config when omitted)
        content_store: Content backend (built from ``settings.content`` when omitted)
        option_store: Persisted state (built from ``settings.server.state_path`` when omitted)

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_output=settings.is_production)

    content_store = content_store or build_content_store(settings.content)
    option_store = option_store or create_option_store(settings.server.state_path)

    dispatcher = create_dispatcher(settings, content_store, option_store)
    audit_log = ConsentAuditLog(
        option_store,
        log_path=settings.server.consent_log_path,
        enabled=settings.server.enable_consent_audit,
    )
    auth = APIKeyAuth(settings.server.api_key, require_auth=settings.server.require_auth)
    limiter = RateLimiter(settings.server.rate_limit_rpm)

    app = FastAPI(
        title="wpmcp",
        description="WordPress content over a tool-invocation protocol",
        version=__version__,
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.audit_log = audit_log

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def client_id(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    @app.exception_handler(RequestRejected)
    async def request_rejected_handler(request: Request, exc: RequestRejected):
        return _error_response(exc.status_code, exc.code, exc.message, exc.data, headers=exc.headers)

    async def authorize(request: Request, api_key: Optional[str] = Depends(api_key_header)) -> str:
        """
        Authenticate and rate limit a request.

        The key comes from ``X-API-Key`` or one of its variants, else from
        the ``api_key`` field of a JSON body.

        Returns:
            The client id the request is counted against
        """
        if not api_key:
            parsed, payload = await _read_json(request)
            api_key = extract_api_key(request.headers, payload if parsed else None)

        if not auth.authenticate(api_key):
            raise RequestRejected(
                status.HTTP_401_UNAUTHORIZED,
                "authentication_failed",
                "Invalid or missing API key",
            )

        client = client_id(request)
        if not limiter.allow(client):
            retry_after = limiter.retry_after(client)
            raise RequestRejected(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "rate_limited",
                "Rate limit exceeded",
                {"retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )
        return client

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            resource_types=dispatcher.resources.type_order,
        )

    @app.post("/wpmcp/v1/data", tags=["Protocol"])
    async def handle_envelope(request: Request, client: str = Depends(authorize)):
        """
        Handle a protocol envelope.

        The response body is always an envelope; unparseable JSON is a
        ``parse_error``.
        """
        parsed, payload = await _read_json(request)
        if not parsed:
            return _error_response(status.HTTP_400_BAD_REQUEST, "parse_error", "Parse error")

        context = ExecutionContext(
            request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
            client_ip=client,
            source="http",
        )
        result = await run_in_threadpool(dispatcher.handle, payload, context)
        return JSONResponse(content=result)

    @app.get("/wpmcp/v1/notifications", tags=["Notifications"])
    async def list_notifications(cursor: Optional[str] = None, client: str = Depends(authorize)):
        """Return one batch of queued resource change notifications."""
        page = await run_in_threadpool(dispatcher.notifications.list, cursor)
        return JSONResponse(content=to_jsonable(page))

    @app.post("/wpmcp/v1/consent", response_model=ConsentRecordResponse, tags=["Consent"])
    async def record_consent(request: Request, client: str = Depends(authorize)):
        """Record a user's consent and issue a token for the approved tool."""
        parsed, payload = await _read_json(request)
        if not parsed:
            return _error_response(status.HTTP_400_BAD_REQUEST, "parse_error", "Parse error")

        try:
            body = ConsentRecordRequest.model_validate(payload)
        except ValidationError as e:
            return _error_response(
                status.HTTP_400_BAD_REQUEST,
                "invalid_request",
                "Invalid consent request",
                {"errors": [error["msg"] for error in e.errors()]},
            )

        await audit_log.record(
            body.tool,
            body.arguments,
            session_id=body.session_id,
            user_id=body.user_id,
            ip=client,
        )
        token = await run_in_threadpool(dispatcher.consent.issue, body.tool)

        return ConsentRecordResponse(
            success=True,
            token=token,
            expires_in=int(dispatcher.consent.ttl.total_seconds()),
        )

    logger.info(
        "wpmcp server ready",
        version=__version__,
        content_backend=settings.content.backend,
        resource_types=dispatcher.resources.type_order,
        require_auth=settings.server.require_auth,
        require_consent=settings.server.require_consent,
    )
    return app


def main():
    """Run the wpmcp server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "wpmcp.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
