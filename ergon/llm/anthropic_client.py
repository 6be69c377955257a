"""Anthropic Messages API client."""

from __future__ import annotations

from typing import Any, AsyncIterator

from anthropic import APIError, AsyncAnthropic, AuthenticationError, RateLimitError

from ergon.core.errors import LLMAuthError, LLMError, LLMRateLimitError
from ergon.core.types import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    ImageUrlContent,
    Message,
    ModelInfo,
    Provider,
    TextContent,
    Tool,
    ToolCall,
    ToolResultContent,
    ToolUseContent,
)

from .base import LLMClient, StreamEvent, require_messages


def sdk_base_url(endpoint: str) -> str | None:
    """`https://api.anthropic.com/v1/` -> `https://api.anthropic.com`; the SDK adds `/v1` itself."""

    url = endpoint.strip().rstrip("/")
    if url.endswith("/v1"):
        url = url[: -len("/v1")]
    return url or None


def _block(content: Any) -> dict[str, Any] | None:
    if isinstance(content, TextContent):
        return {"type": "text", "text": content.text} if content.text else None
    if isinstance(content, ImageUrlContent):
        return {"type": "image", "source": {"type": "url", "url": content.url}}
    if isinstance(content, (ToolUseContent, ToolResultContent)):
        return content.to_dict()
    return None


def to_anthropic_messages(messages: list[Message]) -> tuple[str | None, list[dict[str, Any]]]:
    """Split out the system prompt and build alternating user/assistant turns."""

    system_parts: list[str] = []
    turns: list[dict[str, Any]] = []

    for m in messages:
        if m.role == "system":
            if m.text:
                system_parts.append(m.text)
            continue

        role = "assistant" if m.role == "assistant" else "user"
        blocks = [b for b in (_block(c) for c in m.content) if b is not None]
        for tc in m.tool_calls or []:
            blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments})
        if not blocks:
            continue

        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": role, "content": blocks})

    return ("\n\n".join(system_parts) or None), turns


def to_anthropic_tool(tool: Tool) -> dict[str, Any]:
    return {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}


def map_anthropic_error(e: Exception) -> LLMError:
    if isinstance(e, AuthenticationError):
        return LLMAuthError(f"Anthropic authentication failed: {e}")
    if isinstance(e, RateLimitError):
        return LLMRateLimitError(f"Anthropic rate limit exceeded: {e}")
    return LLMError(f"Anthropic API error: {e}")


class AnthropicClient(LLMClient):
    provider = Provider.ANTHROPIC

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: str = "https://api.anthropic.com/v1/",
        max_tokens: int = 1024,
        client: AsyncAnthropic | None = None,
        timeout_s: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.max_tokens = max_tokens
        self._timeout_s = timeout_s
        self._client = client

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.api_key,
                base_url=sdk_base_url(self.endpoint),
                timeout=self._timeout_s,
            )
        return self._client

    def _check_ready(self) -> None:
        if not self.api_key:
            raise LLMAuthError("API key is not set")

    def _request_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        system, turns = to_anthropic_messages(request.messages)
        kwargs: dict[str, Any] = {"model": request.model, "max_tokens": self.max_tokens, "messages": turns}
        if system:
            kwargs["system"] = system
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.tools:
            kwargs["tools"] = [to_anthropic_tool(t) for t in request.tools]
        return kwargs

    def _parse_response(self, resp: Any) -> CompletionResponse:
        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in resp.content or []:
            kind = getattr(block, "type", None)
            if kind == "text":
                texts.append(block.text)
            elif kind == "tool_use":
                tool_calls.append(ToolCall.from_arguments(id=block.id, name=block.name, arguments=dict(block.input or {})))

        return CompletionResponse(
            id=resp.id,
            object=resp.type,
            created=0,
            model=resp.model,
            choices=[
                Choice(
                    index=0,
                    messages=[Message.assistant("".join(texts), tool_calls=tool_calls)],
                    finish_reason=resp.stop_reason or "",
                )
            ],
        )

    async def complete_message(self, request: CompletionRequest) -> CompletionResponse:
        require_messages(request)
        self._check_ready()
        try:
            resp = await self.client.messages.create(**self._request_kwargs(request))
        except APIError as e:
            raise map_anthropic_error(e) from e
        return self._parse_response(resp)

    async def stream_message(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        require_messages(request)
        self._check_ready()
        try:
            async with self.client.messages.stream(**self._request_kwargs(request)) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield StreamEvent(type="text", delta=text)
                final = await stream.get_final_message()
        except APIError as e:
            raise map_anthropic_error(e) from e
        yield StreamEvent(type="done", response=self._parse_response(final))

    async def list_models(self) -> list[ModelInfo]:
        self._check_ready()
        try:
            page = await self.client.models.list()
        except APIError as e:
            raise map_anthropic_error(e) from e
        return [
            ModelInfo(name=m.display_name or m.id, id=m.id, provider=Provider.ANTHROPIC)
            for m in page.data
        ]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
