"""Shared models, configuration and logging for wpmcp."""

from shared.models import (
    ExecutionContext,
    NotificationEntry,
    RequestEnvelope,
    ResourceDescriptor,
    ToolDefinition,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ExecutionContext",
    "NotificationEntry",
    "RequestEnvelope",
    "ResourceDescriptor",
    "ToolDefinition",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
