from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from ergon.core.types import Tool, ToolResult
from ergon.mcp_client import McpClientError, McpServerConfig, McpServerSession, McpTimeoutError, McpToolOutput
from ergon.observability import get_logger

from .codec import error_result, payload_from_output
from .naming import ToolNameMap
from .policy import PolicyError, ToolPolicy


class ToolSession(Protocol):
    @property
    def name(self) -> str: ...

    async def connect(self) -> None: ...

    async def list_tools(self) -> list[Tool]: ...

    async def call_tool(self, name: str, args: dict[str, Any]) -> McpToolOutput: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[McpServerConfig], ToolSession]


@dataclass(frozen=True, slots=True)
class McpToolBinding:
    server_name: str
    raw_name: str
    model_name: str
    tool: Tool


class McpGateway:
    """Tools from every configured MCP server, behind one call surface.

    - Connects to each server and lists its tools (`load`).
    - Prefixes tool names when more than one server is configured.
    - Applies the tool policy before any call.
    - Returns every outcome, failures included, as a ToolResult.
    """

    def __init__(
        self,
        servers: Sequence[McpServerConfig],
        *,
        policy: ToolPolicy | None = None,
        session_factory: SessionFactory = McpServerSession,
    ) -> None:
        self._servers = list(servers)
        self._policy = policy or ToolPolicy()
        self._session_factory = session_factory
        self._log = get_logger("ergon.mcp")

        self._maps = ToolNameMap.build([s.name for s in self._servers])
        self._sessions: dict[str, ToolSession] = {}
        self._bindings: dict[str, McpToolBinding] = {}
        self._by_raw: dict[str, list[McpToolBinding]] = {}
        self.failures: dict[str, str] = {}
        self._loaded = False

    @property
    def multi(self) -> bool:
        return self._maps.multi

    @property
    def policy(self) -> ToolPolicy:
        return self._policy

    @property
    def loaded(self) -> bool:
        return self._loaded

    def bindings(self) -> list[McpToolBinding]:
        return list(self._bindings.values())

    def _allowed(self, binding: McpToolBinding) -> bool:
        return self._policy.allows(
            binding.model_name,
            raw_name=binding.raw_name,
            raw_ambiguous=len(self._by_raw.get(binding.raw_name, [])) > 1,
        )

    def tools(self) -> list[Tool]:
        """Model-facing tool definitions the policy lets the model call."""

        return [
            Tool(name=b.model_name, description=b.tool.description, parameters=b.tool.parameters)
            for b in self._bindings.values()
            if self._allowed(b)
        ]

    async def load(self) -> list[Tool]:
        if self._loaded:
            return self.tools()

        for cfg in self._servers:
            session = self._session_factory(cfg)
            try:
                await session.connect()
                server_tools = await session.list_tools()
            except McpClientError as e:
                self.failures[cfg.name] = e.message
                self._log.warning("mcp server unavailable", server=cfg.name, error_type=e.error_type, error=e.message)
                await session.close()
                continue

            self._sessions[cfg.name] = session
            for t in server_tools:
                model_name = self._maps.expose(cfg.name, t.name)
                if model_name in self._bindings:
                    await self.close()
                    raise McpClientError(
                        "invalid_config",
                        f"duplicate model tool name after prefixing: {model_name!r}",
                        details={"server": cfg.name},
                    )
                binding = McpToolBinding(server_name=cfg.name, raw_name=t.name, model_name=model_name, tool=t)
                self._bindings[model_name] = binding
                self._by_raw.setdefault(t.name, []).append(binding)

        self._loaded = True
        self._log.info(
            "mcp tools loaded",
            servers=len(self._sessions),
            failed=len(self.failures),
            tools=len(self._bindings),
            multi=self.multi,
        )
        return self.tools()

    async def call_tool(self, *, tool_call_id: str, name: str, arguments: dict[str, Any]) -> ToolResult:
        await self.load()

        binding = self._bindings.get(name)
        try:
            if binding is None:
                self._policy.check(name)
            else:
                self._policy.check(
                    name,
                    raw_name=binding.raw_name,
                    raw_ambiguous=len(self._by_raw.get(binding.raw_name, [])) > 1,
                )
        except PolicyError as e:
            return error_result(
                tool_call_id=tool_call_id, name=name, error_type=e.error_type, message=str(e), text="tool rejected"
            )

        if binding is None:
            return error_result(
                tool_call_id=tool_call_id,
                name=name,
                error_type="not_found",
                message="tool not registered",
                text="tool not found",
            )

        meta = {
            "tool_call_id": tool_call_id,
            "tool_name": name,
            "server": binding.server_name,
            "raw_tool_name": binding.raw_name,
        }
        session = self._sessions[binding.server_name]
        try:
            out = await session.call_tool(binding.raw_name, arguments)
        except asyncio.CancelledError:
            raise
        except McpTimeoutError as e:
            return error_result(
                tool_call_id=tool_call_id,
                name=name,
                error_type="timeout",
                message=e.message,
                text="tool timed out",
                meta=meta,
                details=e.details,
            )
        except McpClientError as e:
            return error_result(
                tool_call_id=tool_call_id,
                name=name,
                error_type=e.error_type,
                message=e.message,
                text="tool error",
                meta=meta,
                details=e.details,
            )
        except Exception as e:  # noqa: BLE001
            self._log.exception("mcp tool call failed", tool=name, server=binding.server_name)
            return error_result(
                tool_call_id=tool_call_id,
                name=name,
                error_type="mcp_error",
                message=str(e),
                text="tool error",
                meta=meta,
                details={"exc": type(e).__name__},
                raw={"exc": repr(e)},
            )

        payload = payload_from_output(out.content, meta=meta)
        if out.is_error:
            return ToolResult(
                tool_call_id=tool_call_id,
                name=name,
                ok=False,
                content=payload,
                error={"type": "tool_error", "message": payload["text"], "details": {}},
            )
        return ToolResult(tool_call_id=tool_call_id, name=name, ok=True, content=payload, error=None)

    async def close(self) -> None:
        sessions, self._sessions = self._sessions, {}
        for session in sessions.values():
            try:
                await session.close()
            except Exception as e:  # noqa: BLE001
                self._log.warning("failed to close mcp session", server=session.name, error=str(e))
        self._bindings.clear()
        self._by_raw.clear()
        self._loaded = False
