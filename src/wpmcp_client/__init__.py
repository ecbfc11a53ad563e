"""Async client for the wpmcp protocol server."""

from wpmcp_client.client import (
    ConsentRequiredError,
    WPMCPAuthError,
    WPMCPClient,
    WPMCPClientError,
    WPMCPConnectionError,
    WPMCPToolError,
)

__all__ = [
    "ConsentRequiredError",
    "WPMCPAuthError",
    "WPMCPClient",
    "WPMCPClientError",
    "WPMCPConnectionError",
    "WPMCPToolError",
]
