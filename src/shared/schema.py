"""JSON Schema helpers for tool arguments."""

from typing import Any

from jsonschema import Draft7Validator


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str], list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages, names of missing required properties)
    """
    if not schema:
        return True, [], []

    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))

    if not errors:
        return True, [], []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    missing: list[str] = []
    required = schema.get("required", [])
    if isinstance(data, dict):
        missing = [name for name in required if name not in data]

    return False, error_messages, missing


TYPE_MAPPING = {
    "string": "string",
    "str": "string",
    "integer": "integer",
    "int": "integer",
    "number": "number",
    "float": "number",
    "boolean": "boolean",
    "bool": "boolean",
    "array": "array",
    "list": "array",
    "object": "object",
    "dict": "object",
}


def create_tool_schema(parameters: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Build an object schema from a list of parameter definitions.

    Each definition has ``name``, ``type`` and ``description`` and may carry
    ``required`` (default False), ``enum``, ``default`` and ``items``.
    """
    properties: dict[str, Any] = {}

    for param in parameters:
        param_schema: dict[str, Any] = {
            "type": TYPE_MAPPING.get(param.get("type", "string"), "string"),
            "description": param.get("description", ""),
        }

        if "enum" in param:
            param_schema["enum"] = param["enum"]

        if "default" in param:
            param_schema["default"] = param["default"]

        if param_schema["type"] == "array" and "items" in param:
            param_schema["items"] = param["items"]

        properties[param["name"]] = param_schema

    return {
        "type": "object",
        "properties": properties,
        "required": [p["name"] for p in parameters if p.get("required", False)],
    }
