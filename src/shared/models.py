"""Core data models for wpmcp.

This module defines the protocol envelopes and the records exchanged
between the dispatcher, the persisted state stores and the content store,
so every layer validates the same shapes.
"""

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
    model_validator,
)


class ExecutionType(str, Enum):
    """Type of tool execution - read operations vs write operations."""
    READ = "read"
    WRITE = "write"


class ToolDefinition(BaseModel):
    """
    Declarative definition of a protocol tool.

    Returned by the ``describe`` operation and used to validate the
    arguments of ``invoke`` requests.
    """
    name: str = Field(..., description="Tool name as used in invoke envelopes")
    description: str = Field(..., description="Clear description for LLM usage")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []},
        description="JSON Schema for argument validation"
    )
    execution_type: ExecutionType = Field(default=ExecutionType.READ)
    examples: list[dict[str, Any]] = Field(default_factory=list)


class ExecutionContext(BaseModel):
    """Per-call metadata carried alongside an envelope."""
    request_id: str = Field(..., description="Unique request identifier")
    client_ip: Optional[str] = None
    user_id: str = Field(default="anonymous")
    source: str = Field(default="http", description="Request source")


# Protocol envelopes

class RequestEnvelope(BaseModel):
    """Inbound protocol envelope."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: Literal["invoke", "describe"]
    name: Optional[str] = None
    arguments: dict[str, Any] = Field(default_factory=dict)
    consent_token: Optional[str] = Field(default=None, alias="consentToken")

    @field_validator("arguments", mode="before")
    @classmethod
    def _default_arguments(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode="after")
    def _invoke_requires_name(self) -> "RequestEnvelope":
        if self.kind == "invoke" and not (self.name and self.name.strip()):
            raise ValueError("invoke requests require a tool name")
        return self


class ErrorPayload(BaseModel):
    """Error body of a response envelope."""
    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = to_jsonable(self.data)
        return payload


class SuccessEnvelope(BaseModel):
    """Successful response envelope."""
    kind: Literal["success"] = "success"
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "data": to_jsonable(self.data)}


class ErrorEnvelope(BaseModel):
    """Failed response envelope."""
    kind: Literal["error"] = "error"
    error: ErrorPayload

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "error": self.error.to_dict()}


ResponseEnvelope = Union[SuccessEnvelope, ErrorEnvelope]


# Resources

class _OmitNoneModel(BaseModel):
    """Model whose optional fields are left out of dumps when unset."""

    @model_serializer(mode="wrap")
    def _omit_none(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        return {key: value for key, value in handler(self).items() if value is not None}


class ResourceDescriptor(_OmitNoneModel):
    """A listable resource, built on demand from the content store."""
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    name: str
    description: str = ""
    mime_type: str = Field(default="application/json", alias="mimeType")
    size: Optional[int] = None


class ResourceContent(_OmitNoneModel):
    """Content of a single resource read."""
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    mime_type: str = Field(..., alias="mimeType")
    text: Optional[str] = None
    blob: Optional[str] = None


class ResourceTemplate(BaseModel):
    """URI template for constructing resource addresses."""
    model_config = ConfigDict(populate_by_name=True)

    uri_template: str = Field(..., alias="uriTemplate")
    name: str
    description: str
    mime_type: str = Field(..., alias="mimeType")


class ResourcePage(BaseModel):
    """One page of a resource listing."""
    model_config = ConfigDict(populate_by_name=True)

    resources: list[ResourceDescriptor] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, alias="nextCursor")


class EndpointDescriptor(BaseModel):
    """A REST route exposed by the content store."""
    path: str
    namespace: str
    methods: list[str] = Field(default_factory=list)


# Notifications

class NotificationAction(str, Enum):
    """Kind of change recorded in the notification log."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class NotificationEntry(BaseModel):
    """A single resource-change event."""
    id: int = Field(..., ge=0, description="Monotonic sequence number")
    uri: str
    action: NotificationAction
    timestamp: str = Field(..., description="RFC3339 timestamp")
    data: dict[str, Any] = Field(default_factory=dict)


class NotificationPage(BaseModel):
    """One batch of the notification log."""
    model_config = ConfigDict(populate_by_name=True)

    notifications: list[NotificationEntry] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, alias="nextCursor")


# Consent

class ConsentToken(BaseModel):
    """Decoded form of a signed consent token."""
    tool: str
    timestamp: str
    nonce: str
    signature: str


class ConsentRequest(BaseModel):
    """Details presented to a human approver for a gated call."""
    tool: str
    description: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    token: str
    expires_in: int


class ConsentLogEntry(BaseModel):
    """
    Audit record of a consent decision.

    Informational only; authorization never consults the consent log.
    """
    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    user_id: str = "anonymous"
    session_id: str
    timestamp: str
    ip: str = ""


def to_jsonable(value: Any) -> Any:
    """Convert models (by alias) and containers of models into plain data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value
