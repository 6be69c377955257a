from __future__ import annotations

from .anthropic_client import AnthropicClient
from .base import LLMClient, StreamEvent
from .manager import DEFAULT_MODEL, FALLBACK_MODELS, ModelManager
from .openai_client import OpenAIClient
from .openai_compatible import OpenAICompatibleClient
from .tool_call_accumulator import InvalidToolCall, ToolCallAccumulator
from .vllm_client import VllmClient

__all__ = [
    "AnthropicClient",
    "DEFAULT_MODEL",
    "FALLBACK_MODELS",
    "InvalidToolCall",
    "LLMClient",
    "ModelManager",
    "OpenAIClient",
    "OpenAICompatibleClient",
    "StreamEvent",
    "ToolCallAccumulator",
    "VllmClient",
]
