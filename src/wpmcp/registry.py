"""Tool registry for the protocol server.

The tool set is closed: every tool has a ``ToolName`` member, a definition
with a JSON Schema for its arguments, and a handler in the dispatcher.
"""

from enum import Enum
from typing import Any, Optional

from shared.logging import get_logger
from shared.models import ExecutionType, ToolDefinition
from shared.schema import create_tool_schema, validate_schema

logger = get_logger(__name__)


class ToolName(str, Enum):
    """Names accepted by ``invoke`` envelopes."""
    DISCOVER_ENDPOINTS = "wp_discover_endpoints"
    CALL_ENDPOINT = "wp_call_endpoint"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"
    RESOURCES_TEMPLATES_LIST = "resources/templates/list"
    RESOURCES_SUBSCRIBE = "resources/subscribe"
    NOTIFICATIONS_LIST = "resources/notifications/list"
    NOTIFICATIONS_CLEAR = "resources/notifications/clear"
    PROMPTS_LIST = "prompts/list"
    PROMPTS_GET = "prompts/get"
    COMPLETION_COMPLETE = "completion/complete"


def default_tools() -> list[ToolDefinition]:
    """Definitions of every tool in ``ToolName``."""
    return [
        ToolDefinition(
            name=ToolName.DISCOVER_ENDPOINTS.value,
            description=(
                "Maps all available REST API endpoints on this WordPress site "
                "and returns their methods and namespaces."
            ),
            parameters=create_tool_schema([]),
            examples=[{"kind": "invoke", "name": "wp_discover_endpoints", "arguments": {}}],
        ),
        ToolDefinition(
            name=ToolName.CALL_ENDPOINT.value,
            description=(
                "Executes specific REST API requests to the WordPress site using "
                "provided parameters. Mutating methods require consent."
            ),
            parameters=create_tool_schema([
                {
                    "name": "endpoint",
                    "type": "string",
                    "description": "API endpoint path (e.g., /wp/v2/posts)",
                    "required": True,
                },
                {
                    "name": "method",
                    "type": "string",
                    "description": "HTTP method",
                    "enum": ["GET", "POST", "PUT", "DELETE", "PATCH"],
                    "default": "GET",
                },
                {
                    "name": "params",
                    "type": "object",
                    "description": "Request parameters or body data",
                },
            ]),
            execution_type=ExecutionType.WRITE,
            examples=[
                {
                    "kind": "invoke",
                    "name": "wp_call_endpoint",
                    "arguments": {"endpoint": "/wp/v2/posts", "method": "GET", "params": {"per_page": 5}},
                },
                {
                    "kind": "invoke",
                    "name": "wp_call_endpoint",
                    "arguments": {
                        "endpoint": "/wp/v2/posts",
                        "method": "POST",
                        "params": {"title": "Hello", "content": "World", "status": "draft"},
                    },
                    "consentToken": "<token from consent_required error>",
                },
            ],
        ),
        ToolDefinition(
            name=ToolName.RESOURCES_LIST.value,
            description="Lists site content as addressable resources, one page at a time.",
            parameters=create_tool_schema([
                {"name": "cursor", "type": "string", "description": "Cursor from a previous page"},
            ]),
        ),
        ToolDefinition(
            name=ToolName.RESOURCES_READ.value,
            description="Reads a resource by URI (e.g., wp://posts/1).",
            parameters=create_tool_schema([
                {"name": "uri", "type": "string", "description": "Resource URI", "required": True},
            ]),
            examples=[{"kind": "invoke", "name": "resources/read", "arguments": {"uri": "wp://posts/1"}}],
        ),
        ToolDefinition(
            name=ToolName.RESOURCES_TEMPLATES_LIST.value,
            description="Lists URI templates for the readable resource types.",
            parameters=create_tool_schema([]),
        ),
        ToolDefinition(
            name=ToolName.RESOURCES_SUBSCRIBE.value,
            description="Subscribes to change notifications for a resource. Requires consent.",
            parameters=create_tool_schema([
                {"name": "uri", "type": "string", "description": "Resource URI", "required": True},
            ]),
            execution_type=ExecutionType.WRITE,
        ),
        ToolDefinition(
            name=ToolName.NOTIFICATIONS_LIST.value,
            description="Lists queued resource change notifications, oldest first.",
            parameters=create_tool_schema([
                {"name": "cursor", "type": "string", "description": "Cursor from a previous batch"},
            ]),
        ),
        ToolDefinition(
            name=ToolName.NOTIFICATIONS_CLEAR.value,
            description="Removes notifications by id, or all of them.",
            parameters=create_tool_schema([
                {
                    "name": "ids",
                    "type": "array",
                    "description": "Ids of the notifications to remove",
                    "items": {"type": "integer"},
                },
                {"name": "all", "type": "boolean", "description": "Remove every notification"},
            ]),
            execution_type=ExecutionType.WRITE,
        ),
        ToolDefinition(
            name=ToolName.PROMPTS_LIST.value,
            description="Lists the available prompt templates.",
            parameters=create_tool_schema([]),
        ),
        ToolDefinition(
            name=ToolName.PROMPTS_GET.value,
            description="Renders a prompt template with the given arguments.",
            parameters=create_tool_schema([
                {"name": "name", "type": "string", "description": "Prompt name", "required": True},
                {"name": "arguments", "type": "object", "description": "Prompt arguments"},
            ]),
            examples=[{
                "kind": "invoke",
                "name": "prompts/get",
                "arguments": {"name": "generate_excerpt", "arguments": {"content": "...", "length": 30}},
            }],
        ),
        ToolDefinition(
            name=ToolName.COMPLETION_COMPLETE.value,
            description="Suggests values for a tool argument from a partial input.",
            parameters=create_tool_schema([
                {"name": "tool", "type": "string", "description": "Tool being called", "required": True},
                {"name": "argument", "type": "string", "description": "Argument to complete", "required": True},
                {"name": "partial", "type": "string", "description": "Partial value", "default": ""},
                {"name": "context", "type": "object", "description": "Additional context"},
            ]),
        ),
    ]


class ToolRegistry:
    """
    Registry of tool definitions keyed by ``ToolName``.

    Responsibilities:
    - Register tool definitions
    - Resolve invoke names to tools
    - Validate arguments against each tool's schema
    """

    def __init__(self, tools: Optional[list[ToolDefinition]] = None) -> None:
        self._tools: dict[ToolName, ToolDefinition] = {}
        for tool in tools if tools is not None else default_tools():
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        """
        Register a tool definition.

        Raises:
            ValueError: If the name is not a ``ToolName`` or is already registered
        """
        name = ToolName(tool.name)
        if name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[name] = tool
        logger.debug("Tool registered", tool=tool.name, execution_type=tool.execution_type.value)

    def resolve(self, name: str) -> Optional[ToolName]:
        """Map an invoke name to its ``ToolName``, or None if unknown."""
        try:
            tool_name = ToolName(name)
        except ValueError:
            return None
        return tool_name if tool_name in self._tools else None

    def get(self, name: ToolName | str) -> Optional[ToolDefinition]:
        resolved = self.resolve(name.value if isinstance(name, ToolName) else name)
        return self._tools.get(resolved) if resolved else None

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> set[ToolName]:
        return set(self._tools)

    def validate_input(
        self,
        name: ToolName | str,
        arguments: dict[str, Any]
    ) -> tuple[bool, list[str], list[str]]:
        """
        Validate arguments against a tool's schema.

        Returns:
            Tuple of (is_valid, error messages, missing required argument names)
        """
        tool = self.get(name)
        if not tool:
            return False, [f"Tool '{name}' not found"], []
        return validate_schema(arguments, tool.parameters)
