from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator

from mcp import ClientSession, StdioServerParameters
from mcp import types as mcp_types
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamable_http_client

from ergon import __version__
from ergon.core.types import Tool
from ergon.observability import get_logger

from .errors import McpClientError, McpTimeoutError
from .types import HttpMcpServerConfig, McpServerConfig, McpToolOutput, StdioMcpServerConfig


CLIENT_INFO = mcp_types.Implementation(name="ergon", title="Ergon", version=__version__)


def _extract_tool_result(payload: Any) -> str | dict[str, Any]:
    """Best-effort extraction from an MCP SDK CallToolResult.

    Structured content wins; otherwise the text blocks are joined; otherwise we
    keep a dict representation of the whole payload.
    """

    structured = getattr(payload, "structuredContent", None)
    if isinstance(structured, dict) and structured:
        return structured

    content = getattr(payload, "content", None) or []
    if isinstance(content, list):
        texts: list[str] = []
        for block in content:
            text = getattr(block, "text", None)
            if isinstance(text, str) and text:
                texts.append(text)
        if texts:
            return "\n".join(texts)

    dump = getattr(payload, "model_dump", None)
    if callable(dump):
        try:
            out = dump()
        except Exception:  # noqa: BLE001
            out = None
        if isinstance(out, dict):
            return out

    return {"repr": repr(payload)}


class McpServerSession:
    """A persistent client session with one MCP server.

    The transport (stdio child process or Streamable HTTP connection) stays
    open between calls until `close()`.
    """

    def __init__(self, config: McpServerConfig) -> None:
        self._cfg = config
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self._log = get_logger(f"ergon.mcp.{config.name}")

    @property
    def config(self) -> McpServerConfig:
        return self._cfg

    @property
    def name(self) -> str:
        return self._cfg.name

    @property
    def connected(self) -> bool:
        return self._session is not None

    @asynccontextmanager
    async def _open_transport(self) -> AsyncIterator[tuple[Any, Any]]:
        cfg = self._cfg
        if isinstance(cfg, StdioMcpServerConfig):
            params = StdioServerParameters(command=cfg.command, args=list(cfg.args), env=cfg.env)
            async with stdio_client(params) as (read, write):
                yield read, write
        elif isinstance(cfg, HttpMcpServerConfig):
            async with streamable_http_client(cfg.url) as (read, write, _get_session_id):
                yield read, write
        else:
            raise McpClientError("invalid_config", f"unsupported MCP server config: {type(cfg).__name__}")

    async def connect(self) -> None:
        if self._session is not None:
            return
        self._cfg.validate()

        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(self._open_transport())
            session = await stack.enter_async_context(ClientSession(read, write, client_info=CLIENT_INFO))
            # initialize() also sends notifications/initialized.
            await asyncio.wait_for(session.initialize(), timeout=self._cfg.timeout_s)
        except TimeoutError as e:
            await stack.aclose()
            raise McpTimeoutError(timeout_s=float(self._cfg.timeout_s), operation="initialize") from e
        except McpClientError:
            await stack.aclose()
            raise
        except Exception as e:  # noqa: BLE001
            await stack.aclose()
            raise McpClientError(
                "mcp_error",
                f"failed to connect to MCP server {self.name!r}: {e}",
                details={"exc": type(e).__name__, "transport": self._cfg.transport},
            ) from e

        self._stack = stack
        self._session = session
        self._log.info("mcp server connected", server=self.name, transport=self._cfg.transport)

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise McpClientError("not_connected", f"MCP server {self.name!r} is not connected")
        return self._session

    async def list_tools(self) -> list[Tool]:
        session = self._require_session()
        try:
            result = await asyncio.wait_for(session.list_tools(), timeout=self._cfg.timeout_s)
        except TimeoutError as e:
            raise McpTimeoutError(timeout_s=float(self._cfg.timeout_s), operation="list_tools") from e
        except Exception as e:  # noqa: BLE001
            raise McpClientError("mcp_error", str(e), details={"exc": type(e).__name__}) from e

        tools: list[Tool] = []
        for t in result.tools:
            schema = t.inputSchema if isinstance(t.inputSchema, dict) else {}
            tools.append(Tool(name=t.name, description=t.description or "", parameters=dict(schema)))
        return tools

    async def call_tool(self, name: str, args: dict[str, Any]) -> McpToolOutput:
        if not isinstance(name, str) or not name:
            raise ValueError("tool name must be a non-empty string")
        if not isinstance(args, dict):
            raise ValueError("tool args must be a dict")

        session = self._require_session()
        try:
            result = await asyncio.wait_for(session.call_tool(name, arguments=args), timeout=self._cfg.timeout_s)
        except TimeoutError as e:
            raise McpTimeoutError(timeout_s=float(self._cfg.timeout_s)) from e
        except Exception as e:  # noqa: BLE001
            raise McpClientError("mcp_error", str(e), details={"exc": type(e).__name__}) from e

        return McpToolOutput(content=_extract_tool_result(result), is_error=bool(getattr(result, "isError", False)))

    async def close(self) -> None:
        stack, self._stack = self._stack, None
        self._session = None
        if stack is not None:
            await stack.aclose()
            self._log.info("mcp server closed", server=self.name)

    async def __aenter__(self) -> "McpServerSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
