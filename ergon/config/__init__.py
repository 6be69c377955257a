from __future__ import annotations

from .editor import SettingsEditor, split_args
from .loader import env_templates, expand_env, load_config, read_yaml
from .settings import (
    AnthropicSettings,
    OpenAISettings,
    Settings,
    Theme,
    ToolsSettings,
    VllmSettings,
    default_settings_path,
    load_settings,
    save_settings,
    settings_from_dict,
)

__all__ = [
    "AnthropicSettings",
    "OpenAISettings",
    "Settings",
    "SettingsEditor",
    "Theme",
    "ToolsSettings",
    "VllmSettings",
    "default_settings_path",
    "env_templates",
    "expand_env",
    "load_config",
    "load_settings",
    "read_yaml",
    "save_settings",
    "settings_from_dict",
    "split_args",
]
