from __future__ import annotations

import re
from dataclasses import replace
from pathlib import Path
from typing import Callable

from ergon.core.errors import ConfigError
from ergon.mcp_client.types import STDIO, HttpMcpServerConfig, McpServerConfig, StdioMcpServerConfig

from .settings import Settings, Theme, check_max_tokens, parse_transport, save_settings


_SERVER_REF_RE = re.compile(r"^mcp_servers\[(\d+)\](.*)$")


def split_args(value: str) -> list[str]:
    """`"a, b,,c"` -> `["a", "b", "c"]`."""

    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_int(value: str, *, path: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"expected an integer, got {value!r}", path=path) from e


def _parse_bool(value: str, *, path: str) -> bool:
    v = str(value).strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"expected true/false, got {value!r}", path=path)


class SettingsEditor:
    """Edits a `Settings` value the way the settings screen does.

    Settings are immutable; every edit replaces `self.settings`. Index based
    MCP edits ignore an out-of-range index, and edits that do not apply to the
    entry's transport are ignored too.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    # General

    def set_theme(self, name: str) -> None:
        self.settings = replace(self.settings, theme=Theme.parse(name))

    # Providers

    def set_openai_api_key(self, value: str) -> None:
        self.settings = replace(self.settings, openai=replace(self.settings.openai, api_key=value))

    def set_openai_endpoint(self, value: str) -> None:
        self.settings = replace(self.settings, openai=replace(self.settings.openai, endpoint=value))

    def set_anthropic_api_key(self, value: str) -> None:
        self.settings = replace(self.settings, anthropic=replace(self.settings.anthropic, api_key=value))

    def set_anthropic_endpoint(self, value: str) -> None:
        self.settings = replace(self.settings, anthropic=replace(self.settings.anthropic, endpoint=value))

    def set_anthropic_max_tokens(self, value: int) -> None:
        check_max_tokens(value)
        self.settings = replace(self.settings, anthropic=replace(self.settings.anthropic, max_tokens=value))

    def set_vllm_endpoint(self, value: str) -> None:
        self.settings = replace(self.settings, vllm=replace(self.settings.vllm, endpoint=value))

    def set_vllm_model(self, value: str) -> None:
        self.settings = replace(self.settings, vllm=replace(self.settings.vllm, model=value))

    # Tools

    def set_tools_enabled(self, value: bool) -> None:
        self.settings = replace(self.settings, tools=replace(self.settings.tools, enabled=value))

    def set_tools_allowlist(self, names: list[str]) -> None:
        self.settings = replace(self.settings, tools=replace(self.settings.tools, allowlist=list(names)))

    def set_max_calls_per_turn(self, value: int) -> None:
        if value < 1:
            raise ConfigError("must be at least 1", path="tools.max_calls_per_turn")
        self.settings = replace(self.settings, tools=replace(self.settings.tools, max_calls_per_turn=value))

    def set_max_rounds(self, value: int) -> None:
        if value < 1:
            raise ConfigError("must be at least 1", path="tools.max_rounds")
        self.settings = replace(self.settings, tools=replace(self.settings.tools, max_rounds=value))

    # MCP servers

    def _servers(self) -> list[McpServerConfig]:
        return list(self.settings.mcp_servers)

    def _put(self, index: int, server: McpServerConfig) -> None:
        servers = self._servers()
        servers[index] = server
        self.settings = replace(self.settings, mcp_servers=tuple(servers))

    def _get(self, index: int) -> McpServerConfig | None:
        if 0 <= index < len(self.settings.mcp_servers):
            return self.settings.mcp_servers[index]
        return None

    def _forget_server_refs(self, index: int, *, shift: bool) -> None:
        """Drop `${VAR}` refs of entry `index`; with `shift`, re-key later entries one down."""

        refs: dict[str, tuple[str, str]] = {}
        for key, ref in self.settings.env_refs.items():
            m = _SERVER_REF_RE.match(key)
            if m is None:
                refs[key] = ref
                continue
            i = int(m.group(1))
            if i == index:
                continue
            if shift and i > index:
                key = f"mcp_servers[{i - 1}]{m.group(2)}"
            refs[key] = ref
        self.settings = replace(self.settings, env_refs=refs)

    def _check_unique(self, name: str, *, skip: int | None = None) -> None:
        existing = self.settings.find_server(name)
        if existing is not None and existing != skip:
            raise ConfigError(f"an MCP server named {name!r} already exists", path="mcp_servers")

    def add_mcp_server(self, name: str | None = None) -> int:
        """Append a blank stdio entry and return its index."""

        if name is None:
            n = len(self.settings.mcp_servers) + 1
            while self.settings.find_server(f"server-{n}") is not None:
                n += 1
            name = f"server-{n}"
        elif not name.strip():
            raise ConfigError("MCP server name is required", path="mcp_servers")
        self._check_unique(name)
        servers = self._servers()
        servers.append(StdioMcpServerConfig(name=name))
        self.settings = replace(self.settings, mcp_servers=tuple(servers))
        return len(servers) - 1

    def rename_mcp_server(self, index: int, name: str) -> None:
        server = self._get(index)
        if server is None:
            return
        self._check_unique(name, skip=index)
        self._put(index, replace(server, name=name))

    def change_mcp_transport(self, index: int, transport: str) -> None:
        server = self._get(index)
        if server is None:
            return
        transport = parse_transport(transport, path=f"mcp_servers[{index}].transport")
        if transport == server.transport:
            return
        self._forget_server_refs(index, shift=False)
        if transport == STDIO:
            self._put(index, StdioMcpServerConfig(name=server.name))
        else:
            self._put(index, HttpMcpServerConfig(name=server.name))

    def set_mcp_command(self, index: int, command: str) -> None:
        server = self._get(index)
        if isinstance(server, StdioMcpServerConfig):
            self._put(index, replace(server, command=command))

    def set_mcp_args(self, index: int, args: str) -> None:
        server = self._get(index)
        if isinstance(server, StdioMcpServerConfig):
            self._put(index, replace(server, args=split_args(args)))

    def set_mcp_endpoint(self, index: int, url: str) -> None:
        server = self._get(index)
        if isinstance(server, HttpMcpServerConfig):
            self._put(index, replace(server, url=url))

    def remove_mcp_server(self, index: int) -> None:
        if self._get(index) is None:
            return
        servers = self._servers()
        del servers[index]
        self.settings = replace(self.settings, mcp_servers=tuple(servers))
        self._forget_server_refs(index, shift=True)

    def save(self, path: Path | None = None) -> Path:
        return save_settings(self.settings, path)

    # Dotted keys

    def apply(self, key: str, value: str) -> None:
        """Apply a `section.field` edit given as text (the `ergon set` command).

        MCP entries are addressed as `mcp_servers.<index>.<field>`.
        """

        simple: dict[str, Callable[[str], None]] = {
            "theme": self.set_theme,
            "openai.api_key": self.set_openai_api_key,
            "openai.endpoint": self.set_openai_endpoint,
            "anthropic.api_key": self.set_anthropic_api_key,
            "anthropic.endpoint": self.set_anthropic_endpoint,
            "anthropic.max_tokens": lambda v: self.set_anthropic_max_tokens(_parse_int(v, path=key)),
            "vllm.endpoint": self.set_vllm_endpoint,
            "vllm.model": self.set_vllm_model,
            "tools.enabled": lambda v: self.set_tools_enabled(_parse_bool(v, path=key)),
            "tools.allowlist": lambda v: self.set_tools_allowlist(split_args(v)),
            "tools.max_calls_per_turn": lambda v: self.set_max_calls_per_turn(_parse_int(v, path=key)),
            "tools.max_rounds": lambda v: self.set_max_rounds(_parse_int(v, path=key)),
        }
        op = simple.get(key)
        if op is not None:
            op(value)
            return

        parts = key.split(".")
        if len(parts) == 3 and parts[0] == "mcp_servers":
            index = _parse_int(parts[1], path=key)
            server_ops: dict[str, Callable[[int, str], None]] = {
                "name": self.rename_mcp_server,
                "transport": self.change_mcp_transport,
                "command": self.set_mcp_command,
                "args": self.set_mcp_args,
                "url": self.set_mcp_endpoint,
            }
            server_op = server_ops.get(parts[2])
            if server_op is not None:
                server_op(index, value)
                return

        raise ConfigError(f"unknown settings key: {key}")
