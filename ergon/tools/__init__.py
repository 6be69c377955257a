from __future__ import annotations

from .codec import dumps_payload, make_payload, normalize_error, payload_from_output, tool_message_content
from .gateway import McpGateway, McpToolBinding
from .naming import ToolNameMap, parse_model_tool_name, server_prefix
from .policy import PolicyError, ToolDisabledError, ToolNotAllowedError, ToolPolicy

__all__ = [
    "McpGateway",
    "McpToolBinding",
    "PolicyError",
    "ToolDisabledError",
    "ToolNameMap",
    "ToolNotAllowedError",
    "ToolPolicy",
    "dumps_payload",
    "make_payload",
    "normalize_error",
    "parse_model_tool_name",
    "payload_from_output",
    "server_prefix",
    "tool_message_content",
]
