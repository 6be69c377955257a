from __future__ import annotations

from ergon.core.errors import ErgonError


class McpClientError(ErgonError):
    """Transport and protocol failures, normalised to a small set of error types.

    `error_type` is one of `not_connected`, `invalid_config`, `mcp_error` or
    `timeout`, and ends up in `ToolResult.error["type"]`.
    """

    def __init__(self, error_type: str, message: str, *, details: dict[str, str] | None = None):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.details = details or {}


class McpTimeoutError(McpClientError):
    def __init__(self, *, timeout_s: float, operation: str = "call"):
        super().__init__(
            "timeout",
            f"MCP {operation} timed out after {timeout_s}s",
            details={"timeout_s": str(timeout_s), "operation": operation},
        )
