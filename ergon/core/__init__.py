from __future__ import annotations

from .errors import ConfigError, ErgonError, LLMAuthError, LLMError, LLMRateLimitError, LLMResponseError
from .types import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    Content,
    ImageUrlContent,
    Message,
    ModelInfo,
    Provider,
    TextContent,
    Tool,
    ToolCall,
    ToolResult,
    ToolResultContent,
    ToolUseContent,
    content_from_dict,
)

__all__ = [
    "Choice",
    "CompletionRequest",
    "CompletionResponse",
    "ConfigError",
    "Content",
    "ErgonError",
    "ImageUrlContent",
    "LLMAuthError",
    "LLMError",
    "LLMRateLimitError",
    "LLMResponseError",
    "Message",
    "ModelInfo",
    "Provider",
    "TextContent",
    "Tool",
    "ToolCall",
    "ToolResult",
    "ToolResultContent",
    "ToolUseContent",
    "content_from_dict",
]
