from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from ergon.core.errors import ConfigError
from ergon.mcp_client.types import (
    STDIO,
    STREAMABLE_HTTP,
    HttpMcpServerConfig,
    McpServerConfig,
    StdioMcpServerConfig,
)

from .loader import deep_merge, env_templates, expand_env, load_dotenv_from, read_yaml, restore_templates


SETTINGS_ENV = "ERGON_SETTINGS"
MAX_TOKENS_RANGE = (1, 4096)

_TRANSPORT_ALIASES = {"stdio": STDIO, "streamable_http": STREAMABLE_HTTP, "http": STREAMABLE_HTTP}


class Theme(str, Enum):
    LIGHT = "Light"
    DARK = "Dark"
    DEFAULT = "Default"

    @classmethod
    def parse(cls, name: object) -> "Theme":
        """Case-insensitive lookup. Anything unknown is `Default`."""

        if isinstance(name, Theme):
            return name
        for theme in cls:
            if str(name).strip().lower() == theme.value.lower():
                return theme
        return cls.DEFAULT


@dataclass(frozen=True, slots=True)
class OpenAISettings:
    api_key: str = ""
    endpoint: str = "https://api.openai.com/v1/"

    def resolved_api_key(self) -> str:
        return self.api_key or os.getenv("OPENAI_API_KEY", "")


@dataclass(frozen=True, slots=True)
class AnthropicSettings:
    api_key: str = ""
    endpoint: str = "https://api.anthropic.com/v1/"
    max_tokens: int = 1024

    def resolved_api_key(self) -> str:
        return self.api_key or os.getenv("ANTHROPIC_API_KEY", "")


@dataclass(frozen=True, slots=True)
class VllmSettings:
    endpoint: str = "http://localhost:8000/v1/"
    model: str = "google/gemma-3-270m"


@dataclass(frozen=True, slots=True)
class ToolsSettings:
    enabled: bool = True
    allowlist: list[str] = field(default_factory=list)
    max_calls_per_turn: int = 5
    max_rounds: int = 8


@dataclass(frozen=True, slots=True)
class Settings:
    """Everything Ergon reads from its settings file.

    `env_refs` remembers which values came from `${VAR}` templates
    (key path -> (template, expanded value)) so saving does not write secrets
    taken from the environment into the file.
    """

    theme: Theme = Theme.DEFAULT
    openai: OpenAISettings = field(default_factory=OpenAISettings)
    anthropic: AnthropicSettings = field(default_factory=AnthropicSettings)
    vllm: VllmSettings = field(default_factory=VllmSettings)
    mcp_servers: tuple[McpServerConfig, ...] = ()
    tools: ToolsSettings = field(default_factory=ToolsSettings)
    path: Path | None = None
    env_refs: Mapping[str, tuple[str, str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "theme": self.theme.value,
            "openai": {"api_key": self.openai.api_key, "endpoint": self.openai.endpoint},
            "anthropic": {
                "api_key": self.anthropic.api_key,
                "endpoint": self.anthropic.endpoint,
                "max_tokens": self.anthropic.max_tokens,
            },
            "vllm": {"endpoint": self.vllm.endpoint, "model": self.vllm.model},
            "mcp_servers": [s.to_dict() for s in self.mcp_servers],
            "tools": {
                "enabled": self.tools.enabled,
                "allowlist": list(self.tools.allowlist),
                "max_calls_per_turn": self.tools.max_calls_per_turn,
                "max_rounds": self.tools.max_rounds,
            },
        }

    def find_server(self, name: str) -> int | None:
        for i, s in enumerate(self.mcp_servers):
            if s.name == name:
                return i
        return None


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError("expected a mapping", path=key)
    return value


def _str(data: Mapping[str, Any], key: str, default: str, *, path: str) -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"expected a string, got {type(value).__name__}", path=path)
    return value


def _int(data: Mapping[str, Any], key: str, default: int, *, path: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"expected an integer, got {type(value).__name__}", path=path)
    return value


def _bool(data: Mapping[str, Any], key: str, default: bool, *, path: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"expected true/false, got {type(value).__name__}", path=path)
    return value


def _str_list(data: Mapping[str, Any], key: str, *, path: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError("expected a list of strings", path=path)
    return list(value)


def check_max_tokens(value: int, *, path: str = "anthropic.max_tokens") -> int:
    lo, hi = MAX_TOKENS_RANGE
    if not lo <= value <= hi:
        raise ConfigError(f"must be between {lo} and {hi}, got {value}", path=path)
    return value


def parse_transport(value: object, *, path: str) -> str:
    transport = _TRANSPORT_ALIASES.get(str(value).strip().lower())
    if transport is None:
        raise ConfigError(f"unknown MCP transport {value!r} (expected stdio or streamable_http)", path=path)
    return transport


def _mcp_server_from_dict(raw: object, *, path: str) -> McpServerConfig:
    if not isinstance(raw, Mapping):
        raise ConfigError("expected a mapping", path=path)

    name = _str(raw, "name", "", path=f"{path}.name").strip()
    if not name:
        raise ConfigError("MCP server name is required", path=f"{path}.name")

    if "transport" in raw:
        transport = parse_transport(raw["transport"], path=f"{path}.transport")
    else:
        transport = STREAMABLE_HTTP if "url" in raw else STDIO

    timeout = raw.get("timeout_s", 30.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("expected a positive number", path=f"{path}.timeout_s")

    if transport == STDIO:
        env = raw.get("env")
        if env is not None and (
            not isinstance(env, Mapping) or not all(isinstance(v, str) for v in env.values())
        ):
            raise ConfigError("expected a mapping of strings", path=f"{path}.env")
        return StdioMcpServerConfig(
            name=name,
            command=_str(raw, "command", "", path=f"{path}.command"),
            args=_str_list(raw, "args", path=f"{path}.args"),
            env={str(k): v for k, v in env.items()} if env else None,
            timeout_s=float(timeout),
        )

    return HttpMcpServerConfig(
        name=name,
        url=_str(raw, "url", "", path=f"{path}.url"),
        timeout_s=float(timeout),
    )


def settings_from_dict(
    data: Mapping[str, Any],
    *,
    path: Path | None = None,
    env_refs: Mapping[str, tuple[str, str]] | None = None,
) -> Settings:
    """Build typed settings from an (already expanded) mapping.

    Raises:
        ConfigError: with the offending key path on a type or range error.
    """

    data = deep_merge(Settings().to_dict(), data)

    openai = _section(data, "openai")
    anthropic = _section(data, "anthropic")
    vllm = _section(data, "vllm")
    tools = _section(data, "tools")

    raw_servers = data.get("mcp_servers") or []
    if not isinstance(raw_servers, list):
        raise ConfigError("expected a list", path="mcp_servers")
    servers = tuple(_mcp_server_from_dict(s, path=f"mcp_servers[{i}]") for i, s in enumerate(raw_servers))
    seen: set[str] = set()
    for i, s in enumerate(servers):
        if s.name in seen:
            raise ConfigError(f"duplicate MCP server name {s.name!r}", path=f"mcp_servers[{i}].name")
        seen.add(s.name)

    return Settings(
        theme=Theme.parse(data.get("theme")),
        openai=OpenAISettings(
            api_key=_str(openai, "api_key", "", path="openai.api_key"),
            endpoint=_str(openai, "endpoint", OpenAISettings().endpoint, path="openai.endpoint"),
        ),
        anthropic=AnthropicSettings(
            api_key=_str(anthropic, "api_key", "", path="anthropic.api_key"),
            endpoint=_str(anthropic, "endpoint", AnthropicSettings().endpoint, path="anthropic.endpoint"),
            max_tokens=check_max_tokens(_int(anthropic, "max_tokens", 1024, path="anthropic.max_tokens")),
        ),
        vllm=VllmSettings(
            endpoint=_str(vllm, "endpoint", VllmSettings().endpoint, path="vllm.endpoint"),
            model=_str(vllm, "model", VllmSettings().model, path="vllm.model"),
        ),
        mcp_servers=servers,
        tools=ToolsSettings(
            enabled=_bool(tools, "enabled", True, path="tools.enabled"),
            allowlist=_str_list(tools, "allowlist", path="tools.allowlist"),
            max_calls_per_turn=_int(tools, "max_calls_per_turn", 5, path="tools.max_calls_per_turn"),
            max_rounds=_int(tools, "max_rounds", 8, path="tools.max_rounds"),
        ),
        path=path,
        env_refs=dict(env_refs or {}),
    )


def default_settings_path() -> Path:
    override = os.getenv(SETTINGS_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".ergon" / "settings.yaml"


def load_settings(path: Path | None = None, *, load_dotenv_file: bool = True) -> Settings:
    """Load settings, creating the file with defaults when it does not exist yet."""

    path = path or default_settings_path()
    if not path.exists():
        settings = Settings(path=path)
        save_settings(settings)
        return settings

    if load_dotenv_file:
        load_dotenv_from()

    raw = read_yaml(path)
    templates = env_templates(raw)
    expanded = expand_env(raw, source=str(path))

    refs: dict[str, tuple[str, str]] = {}
    for key_path, template in templates.items():
        refs[key_path] = (template, str(expand_env(template, source=str(path))))

    return settings_from_dict(expanded, path=path, env_refs=refs)


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    target = path or settings.path or default_settings_path()
    data = restore_templates(settings.to_dict(), settings.env_refs)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to write settings: {target}: {e}") from e
    return target
