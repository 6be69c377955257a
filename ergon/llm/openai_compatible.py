"""Chat Completions client for OpenAI and OpenAI-compatible servers.

Uses the `openai` async SDK against a configurable base URL, so the same code
drives api.openai.com and self-hosted servers such as vLLM.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

from openai import APIError, AsyncOpenAI, AuthenticationError, RateLimitError

from ergon.core.errors import LLMAuthError, LLMError, LLMRateLimitError
from ergon.core.types import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    ImageUrlContent,
    Message,
    Provider,
    TextContent,
    Tool,
    ToolCall,
    ToolResultContent,
)
from ergon.observability import get_logger

from .base import LLMClient, StreamEvent, require_messages
from .tool_call_accumulator import ToolCallAccumulator


def to_openai_message(message: Message) -> dict[str, Any]:
    if message.role == "tool":
        text = "\n".join(c.content for c in message.content if isinstance(c, ToolResultContent))
        return {"role": "tool", "tool_call_id": message.tool_call_id or "", "content": text or message.text}

    if message.role == "assistant" and message.tool_calls:
        return {
            "role": "assistant",
            "content": message.text or None,
            "tool_calls": [tc.to_dict() for tc in message.tool_calls],
        }

    blocks = [c for c in message.content if isinstance(c, (TextContent, ImageUrlContent))]
    if len(blocks) == 1 and isinstance(blocks[0], TextContent):
        return {"role": message.role, "content": blocks[0].text}
    if not blocks:
        return {"role": message.role, "content": ""}
    return {"role": message.role, "content": [b.to_dict() for b in blocks]}


def to_openai_tool(tool: Tool) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {"name": tool.name, "description": tool.description, "parameters": tool.parameters},
    }


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Arguments that are not a JSON object become `{}`; the raw text is kept on the ToolCall."""

    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def map_openai_error(e: Exception) -> LLMError:
    if isinstance(e, AuthenticationError):
        return LLMAuthError(f"authentication failed: {e}")
    if isinstance(e, RateLimitError):
        return LLMRateLimitError(f"rate limit exceeded: {e}")
    return LLMError(f"API error: {e}")


class OpenAICompatibleClient(LLMClient):
    provider = Provider.OPENAI

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: str,
        client: AsyncOpenAI | None = None,
        timeout_s: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._client = client
        self._log = get_logger(f"ergon.llm.{self.provider.value}")

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._sdk_api_key(),
                base_url=self.endpoint,
                timeout=self._timeout_s,
                max_retries=self._max_retries,
            )
        return self._client

    def _sdk_api_key(self) -> str:
        return self.api_key

    def _check_ready(self) -> None:
        """Hook for providers that can fail before any network call."""

    def _request_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": [to_openai_message(m) for m in request.messages],
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.tools:
            kwargs["tools"] = [to_openai_tool(t) for t in request.tools]
        return kwargs

    async def complete_message(self, request: CompletionRequest) -> CompletionResponse:
        require_messages(request)
        self._check_ready()
        try:
            resp = await self.client.chat.completions.create(**self._request_kwargs(request))
        except APIError as e:
            raise map_openai_error(e) from e
        return self._parse_response(resp)

    def _parse_response(self, resp: Any) -> CompletionResponse:
        choices: list[Choice] = []
        for choice in resp.choices or []:
            msg = choice.message
            tool_calls = [
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=parse_arguments(tc.function.arguments),
                    arguments_json=tc.function.arguments or "",
                )
                for tc in (getattr(msg, "tool_calls", None) or [])
            ]
            choices.append(
                Choice(
                    index=int(choice.index or 0),
                    messages=[Message.assistant(msg.content or "", tool_calls=tool_calls)],
                    finish_reason=choice.finish_reason or "",
                )
            )
        # One choice holds the whole reply.
        return CompletionResponse(
            id=resp.id,
            object=resp.object,
            created=int(resp.created or 0),
            model=resp.model or "",
            choices=choices[:1],
        )

    async def stream_message(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        require_messages(request)
        self._check_ready()

        text_parts: list[str] = []
        accumulator = ToolCallAccumulator()
        resp_id, created, model, finish_reason = "", 0, request.model, ""
        try:
            stream = await self.client.chat.completions.create(**self._request_kwargs(request), stream=True)
            async for chunk in stream:
                resp_id = chunk.id or resp_id
                created = int(chunk.created or created)
                model = chunk.model or model
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                finish_reason = choice.finish_reason or finish_reason
                delta = choice.delta
                if delta is None:
                    continue
                if delta.content:
                    text_parts.append(delta.content)
                    yield StreamEvent(type="text", delta=delta.content)
                for tc in delta.tool_calls or []:
                    fn = tc.function
                    accumulator.add_chunk(
                        {
                            "index": tc.index,
                            "id": tc.id,
                            "name": fn.name if fn else None,
                            "args": fn.arguments if fn else None,
                        }
                    )
        except APIError as e:
            raise map_openai_error(e) from e

        tool_calls, invalid = accumulator.finalize()
        for bad in invalid:
            self._log.warning("dropping invalid tool call", tool_call_id=bad.id, tool=bad.name, error=bad.error)

        response = CompletionResponse(
            id=resp_id,
            object="chat.completion",
            created=created,
            model=model,
            choices=[
                Choice(
                    index=0,
                    messages=[Message.assistant("".join(text_parts), tool_calls=tool_calls)],
                    finish_reason=finish_reason,
                )
            ],
        )
        yield StreamEvent(type="done", response=response)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
