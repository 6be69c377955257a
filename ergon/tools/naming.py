"""Model-facing tool names when several MCP servers are configured.

Two servers may both offer a tool called `search`, so with more than one
server every tool is exposed as `<prefix>__<tool>`. The prefix is four
characters, starts with a letter, is derived from the server name (stable
across runs) and is unique among the configured servers.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


SEPARATOR = "__"


def server_prefix(server_name: str) -> str:
    digest = hashlib.blake2s(server_name.encode("utf-8"), digest_size=2).digest()
    x = int.from_bytes(digest, "big")
    return chr(ord("a") + (x % 26)) + f"{x:04x}"[1:]


@dataclass(frozen=True, slots=True)
class ToolNameMap:
    server_to_prefix: dict[str, str]
    prefix_to_server: dict[str, str]

    @property
    def multi(self) -> bool:
        return len(self.server_to_prefix) > 1

    @property
    def single_server(self) -> str:
        return next(iter(self.server_to_prefix), "")

    @classmethod
    def build(cls, server_names: list[str]) -> "ToolNameMap":
        used: set[str] = set()
        server_to_prefix: dict[str, str] = {}
        for name in server_names:
            salt = 0
            candidate = server_prefix(name)
            while candidate in used:
                salt += 1
                candidate = server_prefix(f"{name}#{salt}")
            used.add(candidate)
            server_to_prefix[name] = candidate
        return cls(server_to_prefix=server_to_prefix, prefix_to_server={p: s for s, p in server_to_prefix.items()})

    def expose(self, server_name: str, tool_name: str) -> str:
        if not self.multi:
            return tool_name
        return f"{self.server_to_prefix[server_name]}{SEPARATOR}{tool_name}"

    def parse(self, model_tool_name: str) -> tuple[str, str]:
        """Return `(server_name, tool_name)`.

        Raises:
            ValueError: for a prefixed name that does not match any server.
        """

        if not self.multi:
            return self.single_server, model_tool_name

        prefix, sep, tool_name = model_tool_name.partition(SEPARATOR)
        if not sep or not prefix or not tool_name:
            raise ValueError(f"not a prefixed tool name: {model_tool_name!r}")
        server = self.prefix_to_server.get(prefix)
        if server is None:
            raise ValueError(f"unknown tool prefix: {prefix!r}")
        return server, tool_name


def parse_model_tool_name(model_tool_name: str, maps: ToolNameMap) -> tuple[str, str]:
    return maps.parse(model_tool_name)
