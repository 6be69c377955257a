"""Tool governance.

- `enabled=false`: no tool runs.
- An empty allowlist allows every tool.
- Otherwise only listed names run. A listed raw (unprefixed) name matches
  only when exactly one server offers that tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ergon.config.settings import ToolsSettings
from ergon.core.errors import ErgonError


class PolicyError(ErgonError):
    error_type = "policy"


class ToolDisabledError(PolicyError):
    error_type = "tools_disabled"


class ToolNotAllowedError(PolicyError):
    error_type = "not_allowed"


@dataclass(frozen=True, slots=True)
class ToolPolicy:
    enabled: bool = True
    allowlist: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, tools: ToolsSettings) -> "ToolPolicy":
        return cls(enabled=tools.enabled, allowlist=[t for t in tools.allowlist if t])

    def check(self, tool_name: str, *, raw_name: str | None = None, raw_ambiguous: bool = False) -> None:
        """Raise a PolicyError if the tool may not run."""

        if not self.enabled:
            raise ToolDisabledError("Tool execution is disabled by configuration")
        if not self.allowlist or tool_name in self.allowlist:
            return
        if raw_name is not None and raw_name in self.allowlist:
            if raw_ambiguous:
                raise ToolNotAllowedError(f"Tool name '{raw_name}' is ambiguous across servers")
            return
        raise ToolNotAllowedError(f"Tool '{tool_name}' is not in allowlist")

    def allows(self, tool_name: str, *, raw_name: str | None = None, raw_ambiguous: bool = False) -> bool:
        try:
            self.check(tool_name, raw_name=raw_name, raw_ambiguous=raw_ambiguous)
        except PolicyError:
            return False
        return True
