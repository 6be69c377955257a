"""Provider-neutral LLM client contract.

Every backend turns a `CompletionRequest` into a `CompletionResponse` and lists
the models it can serve. Provider SDK exceptions never leak out: they are
mapped onto the `LLMError` hierarchy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

from ergon.core.errors import LLMError
from ergon.core.types import CompletionRequest, CompletionResponse, ModelInfo, Provider


@dataclass(frozen=True)
class StreamEvent:
    """A streamed completion event.

    type:
        - "text": `delta` holds a text fragment
        - "done": `response` holds the complete response; always the last event
    """

    type: str
    delta: str = ""
    response: CompletionResponse | None = None


def require_messages(request: CompletionRequest) -> None:
    if not request.messages:
        raise LLMError("No messages provided")


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    provider: Provider

    @abstractmethod
    async def complete_message(self, request: CompletionRequest) -> CompletionResponse:
        """Run one completion.

        Raises:
            LLMAuthError: Missing or rejected API key
            LLMRateLimitError: Rate limit exceeded
            LLMError: No messages, or any other API failure
        """

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return the models this provider offers."""

    async def stream_message(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Stream a completion. Without native streaming this completes once."""

        response = await self.complete_message(request)
        for message in response.messages:
            if message.text:
                yield StreamEvent(type="text", delta=message.text)
        yield StreamEvent(type="done", response=response)

    async def close(self) -> None:
        return None
