from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Sequence

from ergon import __version__
from ergon.chat import ChatOrchestrator, ChatSession
from ergon.config import Settings, SettingsEditor, Theme, load_settings
from ergon.core.errors import ConfigError, ErgonError
from ergon.llm import ModelManager
from ergon.mcp_client import HttpMcpServerConfig, McpClientError, StdioMcpServerConfig
from ergon.observability import configure_logging
from ergon.tools import McpGateway, ToolPolicy


logger = logging.getLogger(__name__)

_RESET = "\033[0m"
_THEME_COLOURS: dict[Theme, tuple[str, str]] = {
    Theme.LIGHT: ("\033[34m", "\033[35m"),
    Theme.DARK: ("\033[96m", "\033[92m"),
    Theme.DEFAULT: ("", ""),
}

HELP_TEXT = """Commands:
  /models        list available models
  /model NAME    switch model
  /tools         list MCP tools
  /clear         start a new conversation
  /help          show this help
  /quit          exit
"""


def _redact_secrets(obj):  # noqa: ANN001
    """Best-effort redaction for human-facing settings dumps."""

    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.lower().endswith(("api_key", "token", "secret", "password")):
                out[k] = "<redacted>" if v else ""
            else:
                out[k] = _redact_secrets(v)
        return out
    if isinstance(obj, list):
        return [_redact_secrets(x) for x in obj]
    return obj


def _prefix(label: str, theme: Theme, *, bot: bool) -> str:
    colour = _THEME_COLOURS[theme][1 if bot else 0]
    return f"{colour}{label}{_RESET}" if colour else label


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ergon", description="Chat with OpenAI, Anthropic and vLLM models using MCP tools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--settings", type=Path, help="Settings file (default: ~/.ergon/settings.yaml or $ERGON_SETTINGS)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (e.g. DEBUG, INFO, WARNING)")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("chat", help="Interactive chat (default)")
    sub.add_parser("models", help="List available models")
    sub.add_parser("tools", help="Connect to MCP servers and list their tools")
    sub.add_parser("print-config", help="Print the settings with secrets redacted")

    set_p = sub.add_parser("set", help="Change one setting, e.g. `ergon set anthropic.max_tokens 2048`")
    set_p.add_argument("key")
    set_p.add_argument("value")

    mcp_p = sub.add_parser("mcp", help="Manage MCP servers")
    mcp_sub = mcp_p.add_subparsers(dest="mcp_command", required=True)
    mcp_sub.add_parser("list", help="List configured MCP servers")
    add_p = mcp_sub.add_parser("add", help="Add an MCP server")
    add_p.add_argument("name")
    kind = add_p.add_mutually_exclusive_group(required=True)
    kind.add_argument("--stdio", metavar="COMMAND", help="Launch the server as a child process")
    kind.add_argument("--http", metavar="URL", help="Connect over Streamable HTTP")
    add_p.add_argument("--args", default="", help="Comma-separated arguments for --stdio")
    rm_p = mcp_sub.add_parser("remove", help="Remove an MCP server")
    rm_p.add_argument("name")

    return parser


def build_gateway(settings: Settings) -> McpGateway | None:
    if not settings.mcp_servers:
        return None
    return McpGateway(settings.mcp_servers, policy=ToolPolicy.from_settings(settings.tools))


def build_session(settings: Settings) -> ChatSession:
    models = ModelManager.from_settings(settings)
    orchestrator = ChatOrchestrator(
        models=models,
        gateway=build_gateway(settings),
        max_rounds=settings.tools.max_rounds,
        max_calls_per_turn=settings.tools.max_calls_per_turn,
    )
    return ChatSession(models=models, orchestrator=orchestrator)


def _describe_server(server: StdioMcpServerConfig | HttpMcpServerConfig) -> str:
    if isinstance(server, StdioMcpServerConfig):
        return f"{server.name}\tstdio\t{' '.join([server.command, *server.args]).strip()}"
    return f"{server.name}\tstreamable_http\t{server.url}"


async def _list_models(settings: Settings, write: Callable[[str], object]) -> int:
    models = ModelManager.from_settings(settings)
    try:
        for m in await models.load_models():
            write(f"{m.name}\t{m.provider.value}\t{m.id}\n")
    finally:
        await models.close()
    return 0


async def _list_tools(settings: Settings, write: Callable[[str], object]) -> int:
    gateway = build_gateway(settings)
    if gateway is None:
        write("No MCP servers configured.\n")
        return 0
    try:
        await gateway.load()
        allowed = {t.name for t in gateway.tools()}
        for b in gateway.bindings():
            suffix = "" if b.model_name in allowed else " (blocked by policy)"
            write(f"{b.model_name}\t{b.server_name}\t{b.tool.description}{suffix}\n")
        for name, error in gateway.failures.items():
            write(f"! {name}: {error}\n")
    finally:
        await gateway.close()
    return 0


async def run_chat(
    session: ChatSession,
    *,
    theme: Theme = Theme.DEFAULT,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], object] = sys.stdout.write,
) -> int:
    """Interactive loop. Returns when the user quits or input ends."""

    you = _prefix("You:", theme, bot=False)
    bot = _prefix("Bot:", theme, bot=True)

    gateway = session.orchestrator.gateway
    try:
        await session.load_models()
        tools = await session.load_tools()
        write(f"Model: {session.current_model().name}")
        write(f" | tools: {len(tools)}\n" if gateway is not None else "\n")
        if gateway is not None:
            for name, error in gateway.failures.items():
                write(f"! MCP server {name} unavailable: {error}\n")
        write("Type /help for commands.\n")

        while True:
            try:
                line = await asyncio.to_thread(read_line, f"{you} ")
            except (EOFError, KeyboardInterrupt):
                write("\n")
                break

            text = line.strip()
            if not text:
                continue

            if text.startswith("/"):
                cmd, _, arg = text.partition(" ")
                arg = arg.strip()
                if cmd in {"/quit", "/exit"}:
                    break
                if cmd == "/help":
                    write(HELP_TEXT)
                elif cmd == "/models":
                    for m in session.available_models:
                        marker = "*" if m.name == session.selected_model else " "
                        write(f"{marker} {m.name} ({m.provider.value})\n")
                elif cmd == "/model":
                    if session.select_model(arg) is None:
                        write(f"Unknown model: {arg}\n")
                    else:
                        write(f"Model: {session.selected_model}\n")
                elif cmd == "/tools":
                    for t in session.tools:
                        write(f"{t.name}: {t.description}\n")
                    if not session.tools:
                        write("No tools available.\n")
                elif cmd == "/clear":
                    session.clear()
                    write("Conversation cleared.\n")
                else:
                    write(f"Unknown command: {cmd}. Type /help.\n")
                continue

            write(f"{bot} ")
            streamed: list[str] = []

            def on_text(delta: str) -> None:
                streamed.append(delta)
                write(delta)

            output = await session.send_message(text, on_text=on_text)
            if output is None:
                write("\n")
                continue
            if not streamed:
                write(output.assistant_text)
            for err in output.errors:
                write(f"\n! {err}")
            for r in output.tool_results:
                status = "ok" if r.ok else (r.error or {}).get("type", "error")
                logger.info("tool_result", extra={"tool": r.name, "status": status})
            write("\n")
    finally:
        if gateway is not None:
            await gateway.close()
        await session.models.close()

    return 0


def _run_mcp(ns: argparse.Namespace, settings: Settings, write: Callable[[str], object]) -> int:
    if ns.mcp_command == "list":
        if not settings.mcp_servers:
            write("No MCP servers configured.\n")
        for s in settings.mcp_servers:
            write(_describe_server(s) + "\n")
        return 0

    editor = SettingsEditor(settings)
    if ns.mcp_command == "add":
        index = editor.add_mcp_server(ns.name)
        if ns.http is not None:
            editor.change_mcp_transport(index, "streamable_http")
            editor.set_mcp_endpoint(index, ns.http)
        else:
            editor.set_mcp_command(index, ns.stdio)
            editor.set_mcp_args(index, ns.args)
        editor.settings.mcp_servers[index].validate()
        path = editor.save()
        write(f"Added MCP server {ns.name} to {path}\n")
        return 0

    index = settings.find_server(ns.name)
    if index is None:
        raise ConfigError(f"no MCP server named {ns.name!r}", path="mcp_servers")
    editor.remove_mcp_server(index)
    path = editor.save()
    write(f"Removed MCP server {ns.name} from {path}\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the `ergon` console script."""

    parser = _build_parser()
    try:
        ns = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as e:
        code = e.code
        return int(code) if isinstance(code, int) else 1

    configure_logging(level=ns.log_level)
    command = ns.command or "chat"
    write = sys.stdout.write

    try:
        settings = load_settings(ns.settings)
        logger.info("settings_loaded", extra={"path": str(settings.path)})

        if command == "print-config":
            write(json.dumps(_redact_secrets(settings.to_dict()), ensure_ascii=False, indent=2))
            write("\n")
            return 0

        if command == "set":
            editor = SettingsEditor(settings)
            editor.apply(ns.key, ns.value)
            path = editor.save()
            write(f"Saved {ns.key} to {path}\n")
            return 0

        if command == "mcp":
            return _run_mcp(ns, settings, write)

        if command == "models":
            return asyncio.run(_list_models(settings, write))

        if command == "tools":
            return asyncio.run(_list_tools(settings, write))

        return asyncio.run(run_chat(build_session(settings), theme=settings.theme))

    except ConfigError as e:
        logger.error("config_error", extra={"error": str(e)})
        sys.stderr.write(f"ConfigError: {e}\n")
        return 2
    except McpClientError as e:
        sys.stderr.write(f"MCP error ({e.error_type}): {e.message}\n")
        return 1
    except ErgonError as e:
        sys.stderr.write(f"Error: {e}\n")
        return 1
    except KeyboardInterrupt:
        return 130
