from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from .errors import McpClientError


STDIO = "stdio"
STREAMABLE_HTTP = "streamable_http"


@dataclass(frozen=True, slots=True)
class StdioMcpServerConfig:
    """An MCP server launched as a child process and spoken to over stdio."""

    name: str
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None
    timeout_s: float = 30.0

    @property
    def transport(self) -> str:
        return STDIO

    def validate(self) -> None:
        if not self.command.strip():
            raise McpClientError(
                "invalid_config",
                f"MCP server {self.name!r} has no command",
                details={"server": self.name, "transport": STDIO},
            )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "transport": STDIO,
            "command": self.command,
            "args": list(self.args),
        }
        if self.env:
            out["env"] = dict(self.env)
        if self.timeout_s != 30.0:
            out["timeout_s"] = self.timeout_s
        return out


@dataclass(frozen=True, slots=True)
class HttpMcpServerConfig:
    """An MCP server reached over the Streamable HTTP transport."""

    name: str
    url: str = ""
    timeout_s: float = 30.0

    @property
    def transport(self) -> str:
        return STREAMABLE_HTTP

    def validate(self) -> None:
        if not self.url.strip():
            raise McpClientError(
                "invalid_config",
                f"MCP server {self.name!r} has no url",
                details={"server": self.name, "transport": STREAMABLE_HTTP},
            )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "transport": STREAMABLE_HTTP, "url": self.url}
        if self.timeout_s != 30.0:
            out["timeout_s"] = self.timeout_s
        return out


McpServerConfig = Union[StdioMcpServerConfig, HttpMcpServerConfig]


@dataclass(frozen=True, slots=True)
class McpToolOutput:
    """What a tool call produced: structured data or text, plus the server's error flag."""

    content: str | dict[str, Any]
    is_error: bool = False
