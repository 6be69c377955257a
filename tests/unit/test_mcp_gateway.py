from __future__ import annotations

import asyncio
import json
from typing import Any, Collection

import pytest

from ergon.core.types import Tool
from ergon.mcp_client import (
    HttpMcpServerConfig,
    McpClientError,
    McpServerConfig,
    McpTimeoutError,
    McpToolOutput,
    StdioMcpServerConfig,
)
from ergon.tools import McpGateway, ToolPolicy, server_prefix
from ergon.tools.codec import tool_message_content


class FakeSession:
    def __init__(self, cfg: McpServerConfig, tools: list[str], *, fail_connect: bool = False) -> None:
        self.cfg = cfg
        self._tools = tools
        self._fail_connect = fail_connect
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self.cfg.name

    async def connect(self) -> None:
        if self._fail_connect:
            raise McpClientError("mcp_error", "connection refused")

    async def list_tools(self) -> list[Tool]:
        return [Tool(name=t, description=f"{t} tool", parameters={"type": "object"}) for t in self._tools]

    async def call_tool(self, name: str, args: dict[str, Any]) -> McpToolOutput:
        self.calls.append((name, args))
        if name == "slow":
            raise McpTimeoutError(timeout_s=1.0)
        if name == "crash":
            raise RuntimeError("kaboom")
        if name == "fails":
            return McpToolOutput(content="disk full", is_error=True)
        if name == "weather":
            return McpToolOutput(content={"temp_c": 4})
        return McpToolOutput(content=f"{name} ok")

    async def close(self) -> None:
        self.closed = True


def _gateway(
    servers_tools: dict[str, list[str]],
    *,
    policy: ToolPolicy | None = None,
    down: Collection[str] = (),
):
    sessions: dict[str, FakeSession] = {}

    def factory(cfg: McpServerConfig) -> FakeSession:
        s = FakeSession(cfg, servers_tools[cfg.name], fail_connect=cfg.name in down)
        sessions[cfg.name] = s
        return s

    servers = [StdioMcpServerConfig(name=n, command="srv") for n in servers_tools]
    return McpGateway(servers, policy=policy, session_factory=factory), sessions


def test_single_server_tools_are_unprefixed() -> None:
    gw, sessions = _gateway({"files": ["read_file", "weather"]})

    tools = asyncio.run(gw.load())
    assert [t.name for t in tools] == ["read_file", "weather"]

    r = asyncio.run(gw.call_tool(tool_call_id="c1", name="weather", arguments={"city": "Oslo"}))
    assert r.ok
    assert r.content["data"] == {"temp_c": 4}
    assert r.content["meta"]["server"] == "files"
    assert sessions["files"].calls == [("weather", {"city": "Oslo"})]


def test_multi_server_tools_are_prefixed_and_routed() -> None:
    gw, sessions = _gateway({"files": ["search"], "web": ["search"]})
    tools = asyncio.run(gw.load())

    assert gw.multi
    names = sorted(t.name for t in tools)
    assert names == sorted([f"{server_prefix('files')}__search", f"{server_prefix('web')}__search"])

    r = asyncio.run(gw.call_tool(tool_call_id="c1", name=f"{server_prefix('web')}__search", arguments={}))
    assert r.ok and r.content["text"] == "search ok"
    assert sessions["web"].calls == [("search", {})]
    assert sessions["files"].calls == []


def test_unreachable_server_is_recorded_and_others_load() -> None:
    gw, sessions = _gateway({"files": ["read_file"], "web": ["fetch"]}, down={"web"})
    tools = asyncio.run(gw.load())

    assert len(tools) == 1
    assert gw.failures == {"web": "connection refused"}
    assert sessions["web"].closed


def test_policy_filters_tools_and_blocks_calls() -> None:
    gw, sessions = _gateway({"files": ["read_file", "write_file"]}, policy=ToolPolicy(allowlist=["read_file"]))
    tools = asyncio.run(gw.load())
    assert [t.name for t in tools] == ["read_file"]
    assert len(gw.bindings()) == 2

    r = asyncio.run(gw.call_tool(tool_call_id="c1", name="write_file", arguments={}))
    assert not r.ok
    assert r.error["type"] == "not_allowed"
    assert sessions["files"].calls == []


def test_disabled_tools() -> None:
    gw, _ = _gateway({"files": ["read_file"]}, policy=ToolPolicy(enabled=False))
    r = asyncio.run(gw.call_tool(tool_call_id="c1", name="read_file", arguments={}))
    assert r.error["type"] == "tools_disabled"
    assert asyncio.run(gw.load()) == []


def test_unknown_tool_is_not_found() -> None:
    gw, _ = _gateway({"files": ["read_file"]})
    r = asyncio.run(gw.call_tool(tool_call_id="c9", name="nope", arguments={}))
    assert r.error["type"] == "not_found"
    assert json.loads(tool_message_content(r))["error"]["message"] == "tool not registered"


@pytest.mark.parametrize(
    ("tool", "error_type"),
    [("slow", "timeout"), ("crash", "mcp_error"), ("fails", "tool_error")],
)
def test_call_failures_become_error_results(tool: str, error_type: str) -> None:
    gw, _ = _gateway({"files": [tool]})
    r = asyncio.run(gw.call_tool(tool_call_id="c1", name=tool, arguments={}))
    assert not r.ok
    assert r.tool_call_id == "c1"
    assert r.error["type"] == error_type


def test_tool_error_keeps_server_text() -> None:
    gw, _ = _gateway({"files": ["fails"]})
    r = asyncio.run(gw.call_tool(tool_call_id="c1", name="fails", arguments={}))
    assert r.content["text"] == "disk full"
    assert r.error["message"] == "disk full"


def test_close_closes_sessions_and_forgets_tools() -> None:
    gw, sessions = _gateway({"a": ["x"], "b": ["y"]})

    async def run() -> None:
        await gw.load()
        await gw.close()

    asyncio.run(run())
    assert all(s.closed for s in sessions.values())
    assert not gw.loaded
    assert gw.bindings() == []


def test_http_servers_share_the_gateway() -> None:
    servers = [HttpMcpServerConfig(name="remote", url="http://x/mcp")]
    gw = McpGateway(servers, session_factory=lambda cfg: FakeSession(cfg, ["fetch"]))
    assert [t.name for t in asyncio.run(gw.load())] == ["fetch"]


def test_duplicate_exposed_tool_name_is_a_config_error() -> None:
    gw, sessions = _gateway({"files": ["read_file"], "web": ["fetch", "fetch"]})

    with pytest.raises(McpClientError) as ei:
        asyncio.run(gw.load())

    assert ei.value.error_type == "invalid_config"
    assert ei.value.details == {"server": "web"}
    assert all(s.closed for s in sessions.values())
    assert not gw.loaded
    assert gw.bindings() == []
