from __future__ import annotations

import asyncio
import json
from typing import Any

from ergon.chat import NO_RESPONSE_TEXT, ChatOrchestrator
from ergon.core.errors import LLMRateLimitError
from ergon.core.types import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    Message,
    ModelInfo,
    Provider,
    Tool,
    ToolCall,
    ToolResultContent,
)
from ergon.llm import LLMClient, ModelManager
from ergon.mcp_client import McpServerConfig, McpToolOutput, StdioMcpServerConfig
from ergon.tools import McpGateway


MODEL = ModelInfo(name="gpt-4o-mini", id="gpt-4o-mini", provider=Provider.OPENAI)


def _reply(text: str = "", tool_calls: list[ToolCall] | None = None) -> CompletionResponse:
    return CompletionResponse(
        id="r",
        object="chat.completion",
        created=0,
        model=MODEL.id,
        choices=[
            Choice(
                index=0,
                messages=[Message.assistant(text, tool_calls=tool_calls)],
                finish_reason="tool_calls" if tool_calls else "stop",
            )
        ],
    )


def _call(call_id: str, name: str = "echo", **arguments: Any) -> ToolCall:
    return ToolCall.from_arguments(id=call_id, name=name, arguments=arguments)


class ScriptedClient(LLMClient):
    provider = Provider.OPENAI

    def __init__(self, *replies: CompletionResponse | Exception) -> None:
        self._replies = list(replies)
        self.requests: list[CompletionRequest] = []

    async def complete_message(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def list_models(self) -> list[ModelInfo]:
        return [MODEL]


class EchoSession:
    def __init__(self, cfg: McpServerConfig) -> None:
        self.cfg = cfg
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self.cfg.name

    async def connect(self) -> None:
        return None

    async def list_tools(self) -> list[Tool]:
        return [Tool(name="echo", description="Echo the input", parameters={"type": "object"})]

    async def call_tool(self, name: str, args: dict[str, Any]) -> McpToolOutput:
        self.calls.append(args)
        return McpToolOutput(content=f"echo: {args.get('text', '')}")

    async def close(self) -> None:
        return None


def _setup(*replies: CompletionResponse | Exception, gateway: bool = True, **kwargs: Any):
    client = ScriptedClient(*replies)
    sessions: list[EchoSession] = []

    def factory(cfg: McpServerConfig) -> EchoSession:
        s = EchoSession(cfg)
        sessions.append(s)
        return s

    gw = None
    if gateway:
        gw = McpGateway([StdioMcpServerConfig(name="echo", command="echo-server")], session_factory=factory)
    orch = ChatOrchestrator(models=ModelManager({Provider.OPENAI: client}), gateway=gw, **kwargs)
    return orch, client, sessions


def _tool_payload(message: Message) -> dict[str, Any]:
    block = message.content[0]
    assert isinstance(block, ToolResultContent)
    return json.loads(block.content)


def test_plain_reply() -> None:
    orch, client, _ = _setup(_reply("Hello!"))

    out = asyncio.run(orch.run_turn([Message.user("hi")], model=MODEL))

    assert [m.role for m in out.new_messages] == ["assistant"]
    assert out.assistant_text == "Hello!"
    assert out.errors == [] and out.tool_results == []
    assert [t.name for t in client.requests[0].tools] == ["echo"]


def test_tool_round_trip() -> None:
    orch, client, sessions = _setup(_reply(tool_calls=[_call("c1", text="ping")]), _reply("It said ping."))

    out = asyncio.run(orch.run_turn([Message.user("echo ping")], model=MODEL))

    assert [m.role for m in out.new_messages] == ["assistant", "tool", "assistant"]
    assert out.new_messages[1].tool_call_id == "c1"
    assert _tool_payload(out.new_messages[1])["text"] == "echo: ping"
    assert out.assistant_text == "It said ping."
    assert [r.ok for r in out.tool_results] == [True]
    assert sessions[0].calls == [{"text": "ping"}]

    second = client.requests[1].messages
    assert [m.role for m in second] == ["user", "assistant", "tool"]


def test_model_failure_becomes_no_response_message() -> None:
    orch, _, _ = _setup(LLMRateLimitError("slow down"))

    out = asyncio.run(orch.run_turn([Message.user("hi")], model=MODEL))

    assert out.assistant_text == NO_RESPONSE_TEXT
    assert out.errors == ["slow down"]
    assert out.response is not None and out.response.is_error


def test_calls_beyond_the_per_turn_limit_are_rejected() -> None:
    orch, _, sessions = _setup(
        _reply(tool_calls=[_call("c1", text="a"), _call("c2", text="b")]),
        _reply("done"),
        max_calls_per_turn=1,
    )

    out = asyncio.run(orch.run_turn([Message.user("go")], model=MODEL))

    assert sessions[0].calls == [{"text": "a"}]
    assert [(r.tool_call_id, r.ok) for r in out.tool_results] == [("c1", True), ("c2", False)]
    assert out.tool_results[1].error["type"] == "not_allowed"
    assert "tool_calls_truncated_by_max_calls_per_turn" in out.errors
    tool_msgs = [m for m in out.new_messages if m.role == "tool"]
    assert [m.tool_call_id for m in tool_msgs] == ["c1", "c2"]


def test_tool_calls_without_gateway_are_answered_with_errors() -> None:
    orch, client, _ = _setup(_reply(tool_calls=[_call("c1")]), gateway=False)

    out = asyncio.run(orch.run_turn([Message.user("hi")], model=MODEL))

    assert len(client.requests) == 1
    assert client.requests[0].tools is None
    assert [m.role for m in out.new_messages] == ["assistant", "tool"]
    assert _tool_payload(out.new_messages[1])["error"]["type"] == "tools_disabled"


def test_round_limit_stops_the_loop() -> None:
    orch, client, sessions = _setup(
        _reply(tool_calls=[_call("c1", text="1")]),
        _reply(tool_calls=[_call("c2", text="2")]),
        max_rounds=2,
    )

    out = asyncio.run(orch.run_turn([Message.user("loop")], model=MODEL))

    assert len(client.requests) == 2
    assert sessions[0].calls == [{"text": "1"}]
    assert out.tool_results[-1].tool_call_id == "c2"
    assert out.tool_results[-1].error["type"] == "not_allowed"
    assert out.new_messages[-1].role == "tool"


def test_streaming_forwards_text() -> None:
    orch, _, _ = _setup(_reply("streamed reply"))
    chunks: list[str] = []

    out = asyncio.run(orch.run_turn([Message.user("hi")], model=MODEL, on_text=chunks.append))

    assert "".join(chunks) == "streamed reply"
    assert out.assistant_text == "streamed reply"
