"""Request dispatcher for the protocol server.

Validates inbound envelopes, applies the consent gate, validates tool
arguments and routes each call to its handler. Every failure is turned
into an error envelope here; callers always get a response envelope back.
"""

import secrets
import uuid
from typing import Any, Callable, Optional

from pydantic import ValidationError

from content.base import ContentStore, ContentStoreError
from shared.config import Settings
from shared.logging import get_logger, request_context
from shared.models import ExecutionContext, RequestEnvelope, SuccessEnvelope
from wpmcp import __version__
from wpmcp.completion import CompletionProvider
from wpmcp.consent import ConsentManager
from wpmcp.endpoints import EndpointGateway
from wpmcp.errors import MCPError, normalize
from wpmcp.notifications import ChangeNotifier, NotificationLog, SubscriptionSet
from wpmcp.prompts import PromptLibrary
from wpmcp.registry import ToolName, ToolRegistry
from wpmcp.resources import ResourceManager
from wpmcp.state import OptionStore

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any], ExecutionContext], Any]

SERVER_NAME = "wpmcp"
SERVER_DESCRIPTION = "WordPress content exposed through a tool-invocation protocol"


class Dispatcher:
    """
    Routes protocol envelopes to tools.

    Per call: validate the envelope, check consent for gated tools, validate
    arguments, execute, then wrap the result or normalize the failure. The
    dispatcher keeps no state between calls; shared state lives in the
    components it is given.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        consent: ConsentManager,
        endpoints: EndpointGateway,
        resources: ResourceManager,
        notifications: NotificationLog,
        prompts: PromptLibrary,
        completion: CompletionProvider,
        include_diagnostics: bool = False
    ) -> None:
        self.registry = registry
        self.consent = consent
        self.endpoints = endpoints
        self.resources = resources
        self.notifications = notifications
        self.prompts = prompts
        self.completion = completion
        self.include_diagnostics = include_diagnostics

        self._handlers: dict[ToolName, Handler] = {
            ToolName.DISCOVER_ENDPOINTS: self._discover_endpoints,
            ToolName.CALL_ENDPOINT: self._call_endpoint,
            ToolName.RESOURCES_LIST: self._list_resources,
            ToolName.RESOURCES_READ: self._read_resource,
            ToolName.RESOURCES_TEMPLATES_LIST: self._list_templates,
            ToolName.RESOURCES_SUBSCRIBE: self._subscribe,
            ToolName.NOTIFICATIONS_LIST: self._list_notifications,
            ToolName.NOTIFICATIONS_CLEAR: self._clear_notifications,
            ToolName.PROMPTS_LIST: self._list_prompts,
            ToolName.PROMPTS_GET: self._get_prompt,
            ToolName.COMPLETION_COMPLETE: self._complete,
        }

        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for tools: {sorted(t.value for t in missing)}")
        unregistered = set(ToolName) - registry.names()
        if unregistered:
            raise RuntimeError(f"No definition for tools: {sorted(t.value for t in unregistered)}")

    def handle(self, payload: Any, context: Optional[ExecutionContext] = None) -> dict[str, Any]:
        """
        Handle one protocol envelope.

        Args:
            payload: Decoded request body
            context: Per-call metadata; a fresh request id is used if omitted

        Returns:
            Response envelope as plain data
        """
        context = context or ExecutionContext(request_id=str(uuid.uuid4()))

        with request_context(request_id=context.request_id):
            try:
                envelope = self._parse(payload)
                if envelope.kind == "describe":
                    data = self.describe()
                else:
                    data = self.invoke(envelope.name, envelope.arguments, envelope.consent_token, context)
            except MCPError as e:
                logger.info("Request failed", code=e.code, message=e.message)
                return normalize(e)
            except ContentStoreError as e:
                logger.warning("Content store error", status=e.status, error=e.message)
                return normalize(MCPError(
                    "api_error",
                    f"API returned error: {e.message}",
                    {"status": e.status, "error": e.code}
                ))
            except Exception as e:
                logger.error("Unhandled error", error=str(e), exc_info=True)
                return normalize(e, include_diagnostics=self.include_diagnostics)

            return SuccessEnvelope(data=data).to_dict()

    @staticmethod
    def _parse(payload: Any) -> RequestEnvelope:
        if not isinstance(payload, dict):
            raise MCPError("invalid_request", "Request must be a JSON object")
        try:
            return RequestEnvelope.model_validate(payload)
        except ValidationError as e:
            raise MCPError(
                "invalid_request",
                "Invalid request envelope",
                {"errors": [error["msg"] for error in e.errors()]}
            )

    def describe(self) -> dict[str, Any]:
        """Server description returned for ``describe`` envelopes."""
        tools = self.registry.list_tools()
        return {
            "name": SERVER_NAME,
            "version": __version__,
            "description": SERVER_DESCRIPTION,
            "functions": tools,
            "examples": [example for tool in tools for example in tool.examples],
        }

    def invoke(
        self,
        name: str,
        arguments: dict[str, Any],
        consent_token: Optional[str],
        context: ExecutionContext
    ) -> Any:
        """
        Run a single tool call.

        Raises:
            MCPError: ``unknown_tool``, ``consent_required``,
                ``missing_argument``, ``invalid_arguments`` or whatever
                the tool itself raises
        """
        tool = self.registry.resolve(name)
        if tool is None:
            raise MCPError("unknown_tool", f"Tool not found: {name}", {"name": name})

        with request_context(tool=tool.value):
            arguments = dict(arguments)
            if tool == ToolName.CALL_ENDPOINT and isinstance(arguments.get("method"), str):
                arguments["method"] = arguments["method"].upper()

            self._check_consent(tool, arguments, consent_token)

            is_valid, messages, missing = self.registry.validate_input(tool, arguments)
            if missing:
                raise MCPError(
                    "missing_argument",
                    f"Missing required argument: {missing[0]}",
                    {"missing": missing}
                )
            if not is_valid:
                raise MCPError("invalid_arguments", "Invalid arguments", {"errors": messages})

            logger.debug("Executing tool", user=context.user_id)
            return self._handlers[tool](arguments, context)

    def _check_consent(
        self,
        tool: ToolName,
        arguments: dict[str, Any],
        consent_token: Optional[str]
    ) -> None:
        method = arguments.get("method") if tool == ToolName.CALL_ENDPOINT else None
        if not self.consent.is_required(tool.value, method if isinstance(method, str) else None):
            return
        if self.consent.consume(tool.value, consent_token):
            logger.info("Consent accepted")
            return

        request = self.consent.describe_request(tool.value, arguments)
        raise MCPError(
            "consent_required",
            "User consent is required for this operation",
            request.model_dump()
        )

    # Tool handlers

    def _discover_endpoints(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.endpoints.discover()

    def _call_endpoint(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.endpoints.call(args["endpoint"], args.get("method", "GET"), args.get("params"))

    def _list_resources(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.resources.list(args.get("cursor"))

    def _read_resource(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.resources.read(args["uri"])

    def _list_templates(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.resources.list_templates()

    def _subscribe(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.resources.subscribe(args["uri"])

    def _list_notifications(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.notifications.list(args.get("cursor"))

    def _clear_notifications(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        if args.get("all"):
            cleared = self.notifications.clear_all()
        else:
            cleared = self.notifications.clear(args.get("ids") or [])
        return {"cleared": cleared}

    def _list_prompts(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.prompts.list()

    def _get_prompt(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        prompt_args = {k: v for k, v in args.items() if k not in ("name", "arguments")}
        prompt_args.update(args.get("arguments") or {})
        return self.prompts.get(args["name"], prompt_args)

    def _complete(self, args: dict[str, Any], context: ExecutionContext) -> Any:
        return self.completion.complete(
            args["tool"],
            args["argument"],
            args.get("partial", ""),
            args.get("context"),
        )


def create_dispatcher(
    settings: Settings,
    content_store: ContentStore,
    option_store: OptionStore
) -> Dispatcher:
    """
    Wire a dispatcher from configuration.

    Registers the notification hook on ``content_store`` so mutations of
    subscribed resources land in the notification log.
    """
    secret = settings.server.api_key
    if not secret:
        secret = secrets.token_hex(32)
        logger.warning("No API key configured; consent tokens are signed with an ephemeral secret")

    subscriptions = SubscriptionSet(option_store)
    notifications = NotificationLog(option_store, subscriptions)
    resources = ResourceManager(
        content_store,
        subscriptions,
        allowed_types=settings.resources.allowed_types,
        scheme=settings.resources.scheme,
    )
    endpoints = EndpointGateway(content_store, settings.resources.allowed_types)
    content_store.add_change_hook(ChangeNotifier(notifications, resources.build_uri))

    consent = ConsentManager(
        secret,
        option_store,
        enabled=settings.server.require_consent,
        single_use=settings.server.single_use_consent,
        ttl_seconds=settings.server.consent_ttl_seconds,
    )

    return Dispatcher(
        registry=ToolRegistry(),
        consent=consent,
        endpoints=endpoints,
        resources=resources,
        notifications=notifications,
        prompts=PromptLibrary(content_store),
        completion=CompletionProvider(endpoints, resources),
        include_diagnostics=not settings.is_production,
    )
