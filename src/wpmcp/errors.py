"""Error taxonomy for the protocol.

Every failure raised while handling a call is an ``MCPError`` tagged with a
domain code. ``normalize`` turns any failure into an error envelope with a
stable integer code: JSON-RPC codes for protocol-level failures and a
separate band for domain failures.
"""

import traceback
from enum import IntEnum
from typing import Any, Optional

from shared.models import ErrorEnvelope, ErrorPayload


class ErrorCode(IntEnum):
    """Integer codes carried by error envelopes."""
    # JSON-RPC
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Domain
    AUTHENTICATION_ERROR = -32000
    AUTHORIZATION_ERROR = -32001
    RESOURCE_NOT_FOUND = -32002
    RATE_LIMIT_EXCEEDED = -32003
    VALIDATION_ERROR = -32004
    CONSENT_REQUIRED = -32005


DOMAIN_CODES: dict[str, ErrorCode] = {
    "parse_error": ErrorCode.PARSE_ERROR,

    "invalid_request": ErrorCode.INVALID_REQUEST,
    "invalid_type": ErrorCode.INVALID_REQUEST,

    "unknown_tool": ErrorCode.METHOD_NOT_FOUND,
    "method_not_found": ErrorCode.METHOD_NOT_FOUND,
    "prompt_not_found": ErrorCode.METHOD_NOT_FOUND,

    "invalid_params": ErrorCode.INVALID_PARAMS,
    "invalid_arguments": ErrorCode.INVALID_PARAMS,
    "invalid_invoke": ErrorCode.INVALID_PARAMS,
    "invalid_uri": ErrorCode.INVALID_PARAMS,
    "missing_argument": ErrorCode.INVALID_PARAMS,
    "missing_endpoint": ErrorCode.INVALID_PARAMS,
    "missing_uri": ErrorCode.INVALID_PARAMS,
    "missing_name": ErrorCode.INVALID_PARAMS,
    "missing_parameters": ErrorCode.INVALID_PARAMS,

    "authentication_failed": ErrorCode.AUTHENTICATION_ERROR,

    "forbidden": ErrorCode.AUTHORIZATION_ERROR,
    "forbidden_endpoint": ErrorCode.AUTHORIZATION_ERROR,
    "forbidden_resource": ErrorCode.AUTHORIZATION_ERROR,

    "resource_not_found": ErrorCode.RESOURCE_NOT_FOUND,
    "rate_limited": ErrorCode.RATE_LIMIT_EXCEEDED,
    "validation_error": ErrorCode.VALIDATION_ERROR,
    "consent_required": ErrorCode.CONSENT_REQUIRED,

    "internal_error": ErrorCode.INTERNAL_ERROR,
}


class MCPError(Exception):
    """A failure tagged with a domain code and optional structured detail."""

    def __init__(self, code: str, message: str, data: Optional[Any] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __repr__(self) -> str:
        return f"MCPError(code={self.code!r}, message={self.message!r})"


def error_code_for(code: str, data: Optional[Any] = None) -> int:
    """
    Map a domain code to its integer code.

    An integer ``code`` inside a mapping detail takes precedence. Unknown
    domain codes map to ``INTERNAL_ERROR``.
    """
    if isinstance(data, dict):
        explicit = data.get("code")
        if isinstance(explicit, int) and not isinstance(explicit, bool):
            return explicit
    return int(DOMAIN_CODES.get(code, ErrorCode.INTERNAL_ERROR))


def create_error(code: int, message: str, data: Optional[Any] = None) -> dict[str, Any]:
    """Build an error envelope from an integer code."""
    return ErrorEnvelope(error=ErrorPayload(code=code, message=message, data=data)).to_dict()


def normalize(failure: BaseException, include_diagnostics: bool = False) -> dict[str, Any]:
    """
    Convert any failure into an error envelope.

    Args:
        failure: An ``MCPError`` or any other exception
        include_diagnostics: Attach exception type and traceback to
            unexpected failures (never enable in production)

    Returns:
        Error envelope as plain data
    """
    if isinstance(failure, MCPError):
        return create_error(
            error_code_for(failure.code, failure.data),
            failure.message,
            failure.data,
        )

    data = None
    if include_diagnostics:
        data = {
            "exception": type(failure).__name__,
            "trace": "".join(
                traceback.format_exception(type(failure), failure, failure.__traceback__)
            ),
        }
    message = str(failure) if include_diagnostics else "Internal error"
    return create_error(ErrorCode.INTERNAL_ERROR, message or "Internal error", data)
