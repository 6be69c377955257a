"""MCP (Model Context Protocol) client sessions.

Named `mcp_client` so it never shadows the upstream SDK (`import mcp`).
"""

from __future__ import annotations

from .errors import McpClientError, McpTimeoutError
from .session import McpServerSession
from .types import (
    STDIO,
    STREAMABLE_HTTP,
    HttpMcpServerConfig,
    McpServerConfig,
    McpToolOutput,
    StdioMcpServerConfig,
)

__all__ = [
    "HttpMcpServerConfig",
    "McpClientError",
    "McpServerConfig",
    "McpServerSession",
    "McpTimeoutError",
    "McpToolOutput",
    "STDIO",
    "STREAMABLE_HTTP",
    "StdioMcpServerConfig",
]
