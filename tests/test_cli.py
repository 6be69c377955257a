from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
import yaml

from ergon.chat import ChatOrchestrator, ChatSession
from ergon.cli import _prefix, main, run_chat
from ergon.config import Theme
from ergon.core.types import Choice, CompletionRequest, CompletionResponse, Message, ModelInfo, Provider
from ergon.llm import LLMClient, ModelManager


class HelloClient(LLMClient):
    provider = Provider.OPENAI

    async def list_models(self) -> list[ModelInfo]:
        return [ModelInfo(name="gpt-4o-mini", id="gpt-4o-mini")]

    async def complete_message(self, request: CompletionRequest) -> CompletionResponse:
        return CompletionResponse(
            id="r",
            object="chat.completion",
            created=0,
            model=request.model,
            choices=[Choice(0, [Message.assistant("Hi there")], "stop")],
        )


@pytest.fixture
def settings_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return tmp_path / "settings.yaml"


def test_print_config_redacts_secrets(settings_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings_path.write_text("openai:\n  api_key: sk-secret\n", encoding="utf-8")

    assert main(["--settings", str(settings_path), "print-config"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["openai"]["api_key"] == "<redacted>"
    assert out["anthropic"]["api_key"] == ""
    assert settings_path.exists()


def test_set_saves_the_value(settings_path: Path) -> None:
    assert main(["--settings", str(settings_path), "set", "anthropic.max_tokens", "2048"]) == 0
    data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    assert data["anthropic"]["max_tokens"] == 2048


def test_set_rejects_invalid_values(settings_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--settings", str(settings_path), "set", "anthropic.max_tokens", "9999"]) == 2
    assert "ConfigError: anthropic.max_tokens" in capsys.readouterr().err

    assert main(["--settings", str(settings_path), "set", "nope.key", "1"]) == 2


def test_broken_settings_file_exits_2(settings_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings_path.write_text("theme: [unclosed\n", encoding="utf-8")
    assert main(["--settings", str(settings_path), "print-config"]) == 2
    assert "ConfigError" in capsys.readouterr().err


def test_mcp_add_list_remove(settings_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    base = ["--settings", str(settings_path), "mcp"]
    assert main([*base, "add", "files", "--stdio", "uvx", "--args", "mcp-server-files, /srv"]) == 0
    assert main([*base, "add", "web", "--http", "http://localhost:9000/mcp"]) == 0
    capsys.readouterr()

    assert main([*base, "list"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "files\tstdio\tuvx mcp-server-files /srv",
        "web\tstreamable_http\thttp://localhost:9000/mcp",
    ]

    assert main([*base, "add", "web", "--http", "http://other/mcp"]) == 2
    assert main([*base, "remove", "files"]) == 0
    assert main([*base, "remove", "files"]) == 2

    data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    assert [s["name"] for s in data["mcp_servers"]] == ["web"]


def test_mcp_add_requires_a_transport(settings_path: Path) -> None:
    assert main(["--settings", str(settings_path), "mcp", "add", "files"]) == 2


def test_models_command(
    settings_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(ModelManager, "from_settings", classmethod(lambda cls, s: cls({Provider.OPENAI: HelloClient()})))

    assert main(["--settings", str(settings_path), "models"]) == 0
    assert capsys.readouterr().out == "gpt-4o-mini\topenai\tgpt-4o-mini\n"


def test_tools_command_without_servers(settings_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--settings", str(settings_path), "tools"]) == 0
    assert "No MCP servers configured." in capsys.readouterr().out


def test_run_chat_script() -> None:
    models = ModelManager({Provider.OPENAI: HelloClient()})
    session = ChatSession(models=models, orchestrator=ChatOrchestrator(models=models))
    script = ["/help", "/model nope", "", "hello", "/models", "/clear", "/quit", "never read"]
    prompts: list[str] = []
    written: list[str] = []

    def read_line(prompt: str) -> str:
        prompts.append(prompt)
        return script.pop(0)

    assert asyncio.run(run_chat(session, read_line=read_line, write=written.append)) == 0

    out = "".join(written)
    assert out.startswith("Model: gpt-4o-mini\n")
    assert "/quit" in out
    assert "Unknown model: nope" in out
    assert "Bot: Hi there\n" in out
    assert "* gpt-4o-mini (openai)" in out
    assert "Conversation cleared." in out
    assert script == ["never read"]
    assert session.messages == []
    assert prompts[0] == "You: "


def test_run_chat_stops_at_end_of_input() -> None:
    models = ModelManager({Provider.OPENAI: HelloClient()})
    session = ChatSession(models=models, orchestrator=ChatOrchestrator(models=models))

    def read_line(prompt: str) -> str:
        raise EOFError

    assert asyncio.run(run_chat(session, read_line=read_line, write=lambda s: None)) == 0


def test_theme_prefixes() -> None:
    assert _prefix("You:", Theme.DEFAULT, bot=False) == "You:"
    assert _prefix("Bot:", Theme.DARK, bot=True) == "\033[92mBot:\033[0m"


def test_mcp_remove_does_not_write_env_secrets(
    settings_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TOKEN_A", "secret-a")
    monkeypatch.setenv("TOKEN_B", "secret-b")
    settings_path.write_text(
        "mcp_servers:\n"
        "  - {name: one, command: srv, env: {TOKEN: '${TOKEN_A}'}}\n"
        "  - {name: two, command: srv, env: {TOKEN: '${TOKEN_B}'}}\n",
        encoding="utf-8",
    )

    assert main(["--settings", str(settings_path), "mcp", "remove", "one"]) == 0

    text = settings_path.read_text(encoding="utf-8")
    assert "secret-b" not in text
    data = yaml.safe_load(text)
    assert data["mcp_servers"] == [
        {"name": "two", "transport": "stdio", "command": "srv", "args": [], "env": {"TOKEN": "${TOKEN_B}"}}
    ]
