from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml
from dotenv import load_dotenv

from ergon.core.errors import ConfigError


_ENV_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True, slots=True)
class _UnresolvedEnvRef:
    var_name: str
    key_path: str
    reason: str  # "missing" | "empty"


def _child_path(key_path: str, key: object) -> str:
    if isinstance(key, int):
        return f"{key_path}[{key}]" if key_path else f"[{key}]"
    return f"{key_path}.{key}" if key_path else str(key)


def deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Merge `overlay` into `base`. Dicts merge recursively, anything else is replaced."""

    for k, v in overlay.items():
        if isinstance(v, Mapping) and isinstance(base.get(k), Mapping):
            base[k] = deep_merge(dict(base[k]), v)  # type: ignore[arg-type]
        else:
            base[k] = v
    return base


def read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) if text.strip() else {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read YAML config: {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Top-level YAML must be a mapping/dict: {path}")
    return dict(data)


def _expand(obj: Any, *, key_path: str, unresolved: list[_UnresolvedEnvRef]) -> Any:
    if isinstance(obj, str):
        def repl(match: re.Match[str]) -> str:
            name = match.group(1)
            value = os.getenv(name)
            if value is None or value == "":
                reason = "missing" if value is None else "empty"
                unresolved.append(_UnresolvedEnvRef(var_name=name, key_path=key_path, reason=reason))
                return match.group(0)
            return value

        return _ENV_PLACEHOLDER_RE.sub(repl, obj)

    if isinstance(obj, Mapping):
        return {
            str(k): _expand(v, key_path=_child_path(key_path, str(k)), unresolved=unresolved)
            for k, v in obj.items()
        }

    if isinstance(obj, list):
        return [_expand(v, key_path=_child_path(key_path, i), unresolved=unresolved) for i, v in enumerate(obj)]

    return obj


def expand_env(obj: Any, *, source: str = "<config>") -> Any:
    """Expand `${ENV_VAR}` placeholders in every string value, strictly.

    Raises:
        ConfigError: naming each variable that is missing or empty and where it is used.
    """

    unresolved: list[_UnresolvedEnvRef] = []
    expanded = _expand(obj, key_path="", unresolved=unresolved)
    if unresolved:
        lines: list[str] = ["Unresolved environment variables in config:"]
        for ref in unresolved:
            lines.append(f"- {ref.var_name} ({ref.reason}) at {ref.key_path or '<root>'} in {source}")
        raise ConfigError("\n".join(lines))
    return expanded


def env_templates(obj: Any, *, key_path: str = "") -> dict[str, str]:
    """Map the key path of every string holding a `${VAR}` placeholder to its raw text."""

    out: dict[str, str] = {}
    if isinstance(obj, str):
        if _ENV_PLACEHOLDER_RE.search(obj):
            out[key_path] = obj
    elif isinstance(obj, Mapping):
        for k, v in obj.items():
            out.update(env_templates(v, key_path=_child_path(key_path, str(k))))
    elif isinstance(obj, list):
        for i, v in enumerate(obj):
            out.update(env_templates(v, key_path=_child_path(key_path, i)))
    return out


def restore_templates(obj: Any, refs: Mapping[str, tuple[str, str]], *, key_path: str = "") -> Any:
    """Put `${VAR}` templates back wherever the value still equals what they expanded to.

    `refs` maps key path -> (template, expanded value).
    """

    if isinstance(obj, str):
        ref = refs.get(key_path)
        if ref is not None and ref[1] == obj:
            return ref[0]
        return obj
    if isinstance(obj, Mapping):
        return {k: restore_templates(v, refs, key_path=_child_path(key_path, str(k))) for k, v in obj.items()}
    if isinstance(obj, list):
        return [restore_templates(v, refs, key_path=_child_path(key_path, i)) for i, v in enumerate(obj)]
    return obj


def load_dotenv_from(dotenv_path: Path | None = None) -> None:
    # Best effort: strictness is enforced by the ${ENV_VAR} expansion step.
    load_dotenv(dotenv_path or Path.cwd() / ".env", override=False)


def load_config(
    path: Path,
    *,
    load_dotenv_file: bool = True,
    dotenv_path: Path | None = None,
) -> dict[str, Any]:
    """Load one YAML file with strict `${ENV_VAR}` expansion.

    Args:
        path: The YAML file.
        load_dotenv_file: Whether to load a .env file (without overriding the
            environment) before expansion.
        dotenv_path: Explicit .env path. Defaults to `.env` in the current directory.

    Raises:
        ConfigError: If the YAML is invalid or a placeholder cannot be resolved.
    """

    if load_dotenv_file:
        load_dotenv_from(dotenv_path)
    expanded = expand_env(read_yaml(path), source=str(path))
    if not isinstance(expanded, dict):
        raise ConfigError("Expanded config must be a dict")
    return expanded
