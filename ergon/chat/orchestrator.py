from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, cast

from langgraph.graph import END, START, StateGraph

from ergon.core.errors import LLMError
from ergon.core.types import CompletionRequest, CompletionResponse, Message, ModelInfo, Tool, ToolCall, ToolResult
from ergon.llm.manager import ModelManager
from ergon.observability import add_error, bind_context, get_logger, set_state
from ergon.observability.ids import new_session_id
from ergon.tools.codec import error_result, tool_message_content
from ergon.tools.gateway import McpGateway

from .graph_state import TurnState


NO_RESPONSE_TEXT = "Error: No response from model."

TextCallback = Callable[[str], None]


@dataclass(slots=True)
class TurnOutput:
    new_messages: list[Message]
    tool_results: list[ToolResult] = field(default_factory=list)
    response: CompletionResponse | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def assistant_text(self) -> str:
        return "\n".join(m.text for m in self.new_messages if m.role == "assistant" and m.text)


class ChatOrchestrator:
    """LangGraph COMPLETE -> ACT -> COMPLETE loop for one user turn.

    COMPLETE sends the conversation and the gateway's tools to the model.
    ACT runs the requested tool calls on their MCP servers and appends the
    results; the loop ends when the model answers without tool calls or the
    round budget is spent.
    """

    def __init__(
        self,
        *,
        models: ModelManager,
        gateway: McpGateway | None = None,
        max_rounds: int = 8,
        max_calls_per_turn: int = 5,
    ) -> None:
        self._models = models
        self._gateway = gateway
        self._max_rounds = max(1, int(max_rounds))
        self._max_calls = max(0, int(max_calls_per_turn))

        self._session_id = new_session_id()
        self._turn_id = 0
        self._log = get_logger("ergon.orchestrator")

    @property
    def gateway(self) -> McpGateway | None:
        return self._gateway

    async def run_turn(
        self,
        history: list[Message],
        *,
        model: ModelInfo,
        on_text: TextCallback | None = None,
    ) -> TurnOutput:
        self._turn_id += 1
        bind_context(session_id=self._session_id, turn_id=self._turn_id)

        tools: list[Tool] = []
        if self._gateway is not None:
            tools = await self._gateway.load()

        graph = self._build_graph(model=model, tools=tools, on_text=on_text)

        t0 = time.perf_counter()
        out_state = cast(
            TurnState,
            await graph.ainvoke(
                {
                    "history": list(history),
                    "rounds": 0,
                    "pending_tool_calls": [],
                    "new_messages": [],
                    "tool_results": [],
                    "errors": [],
                    "executed_calls": 0,
                },
                config={"recursion_limit": 2 * self._max_rounds + 4},
            ),
        )
        set_state("DONE")

        output = TurnOutput(
            new_messages=list(out_state.get("new_messages", [])),
            tool_results=list(out_state.get("tool_results", [])),
            response=out_state.get("response"),
            errors=list(out_state.get("errors", [])),
        )
        self._log.info(
            "turn done",
            model=model.id,
            provider=model.provider.value,
            latency_ms=round((time.perf_counter() - t0) * 1000, 2),
            rounds=out_state.get("rounds", 0),
            tool_results=len(output.tool_results),
        )
        return output

    async def _complete(
        self,
        request: CompletionRequest,
        model: ModelInfo,
        on_text: TextCallback | None,
    ) -> CompletionResponse:
        if on_text is None:
            return await self._models.complete_message(model, request)

        response: CompletionResponse | None = None
        async for event in self._models.stream_message(model, request):
            if event.type == "text" and event.delta:
                on_text(event.delta)
            elif event.type == "done":
                response = event.response
        if response is None:
            raise LLMError("stream ended without a response")
        return response

    def _build_graph(self, *, model: ModelInfo, tools: list[Tool], on_text: TextCallback | None):
        gateway = self._gateway
        max_rounds = self._max_rounds
        max_calls = self._max_calls

        async def complete_node(state: TurnState) -> dict[str, Any]:
            set_state("COMPLETE")
            messages = list(state.get("history", [])) + list(state.get("new_messages", []))
            request = CompletionRequest(model=model.id, messages=messages, tools=tools or None)

            errors: list[str] = []
            t0 = time.perf_counter()
            try:
                response = await self._complete(request, model, on_text)
            except LLMError as e:
                self._log.error("completion failed", model=model.id, error=str(e))
                add_error(str(e))
                errors.append(str(e))
                response = CompletionResponse.failed(e)

            if response.choices:
                new = response.messages
            else:
                new = [Message.assistant(NO_RESPONSE_TEXT)]

            self._log.info(
                "complete done",
                latency_ms=round((time.perf_counter() - t0) * 1000, 2),
                tool_calls=len(response.tool_calls),
            )
            return {
                "response": response,
                "pending_tool_calls": response.tool_calls,
                "new_messages": new,
                "errors": errors,
                "rounds": int(state.get("rounds", 0)) + 1,
            }

        def route(state: TurnState) -> str:
            if not state.get("pending_tool_calls"):
                return END
            if gateway is None or int(state.get("rounds", 0)) >= max_rounds:
                return "skip_tools"
            return "act"

        async def act_node(state: TurnState) -> dict[str, Any]:
            set_state("ACT")
            calls: list[ToolCall] = list(state.get("pending_tool_calls", []))
            budget = max(0, max_calls - int(state.get("executed_calls", 0) or 0))
            run, rejected = calls[:budget], calls[budget:]

            assert gateway is not None
            results = list(
                await asyncio.gather(
                    *(gateway.call_tool(tool_call_id=tc.id, name=tc.name, arguments=tc.arguments) for tc in run)
                )
            )
            for tc in rejected:
                results.append(
                    error_result(
                        tool_call_id=tc.id,
                        name=tc.name,
                        error_type="not_allowed",
                        message=f"tool call limit of {max_calls} per turn reached",
                        text="tool rejected",
                    )
                )

            errors = ["tool_calls_truncated_by_max_calls_per_turn"] if rejected else []
            by_id = {r.tool_call_id: r for r in results}
            messages = [
                Message.tool(tc.id, tool_message_content(by_id[tc.id]), is_error=not by_id[tc.id].ok) for tc in calls
            ]
            self._log.info("act done", executed=len(run), rejected=len(rejected))
            return {"tool_results": results, "new_messages": messages, "errors": errors, "executed_calls": len(run)}

        async def skip_tools_node(state: TurnState) -> dict[str, Any]:
            # Every tool call must be answered before the conversation can continue.
            set_state("ACT")
            if gateway is None:
                error_type, message = "tools_disabled", "no MCP servers are configured"
            else:
                error_type, message = "not_allowed", f"tool round limit of {max_rounds} reached"

            results = [
                error_result(tool_call_id=tc.id, name=tc.name, error_type=error_type, message=message, text="tool rejected")
                for tc in state.get("pending_tool_calls", [])
            ]
            messages = [Message.tool(r.tool_call_id, tool_message_content(r), is_error=True) for r in results]
            return {"tool_results": results, "new_messages": messages}

        builder = StateGraph(TurnState)
        builder.add_node("complete", complete_node)
        builder.add_node("act", act_node)
        builder.add_node("skip_tools", skip_tools_node)

        builder.add_edge(START, "complete")
        builder.add_conditional_edges("complete", route, ["act", "skip_tools", END])
        builder.add_edge("act", "complete")
        builder.add_edge("skip_tools", END)

        return builder.compile()
