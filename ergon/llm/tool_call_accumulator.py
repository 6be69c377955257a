"""Streaming tool-call argument accumulator.

OpenAI-compatible streams deliver a tool call's JSON arguments split across
chunks; only the first chunk of a call carries its id and name, later ones
carry just the stream index. Parsing is best-effort: an invalid tool call is
reported, never raised.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ergon.core.types import ToolCall
from ergon.observability.ids import new_tool_call_id


@dataclass(frozen=True)
class InvalidToolCall:
    """A tool call that could not be parsed into JSON object arguments."""

    id: str | None
    name: str | None
    raw_args: str
    error: str


@dataclass
class _Pending:
    id: str | None = None
    name: str | None = None
    args: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    def __init__(self) -> None:
        self._pending: dict[str, _Pending] = {}

    def __bool__(self) -> bool:
        return bool(self._pending)

    def add_chunk(self, chunk: dict[str, Any]) -> None:
        """Consume one `{"index", "id", "name", "args"}` fragment."""

        idx = chunk.get("index")
        call_id = chunk.get("id") or None
        if idx is not None:
            key = f"index_{idx}"
        elif call_id:
            key = f"id_{call_id}"
        else:
            key = "index_unknown"

        pending = self._pending.setdefault(key, _Pending())
        if call_id and pending.id is None:
            pending.id = call_id
        name = chunk.get("name")
        if name and pending.name is None:
            pending.name = name
        fragment = chunk.get("args")
        if isinstance(fragment, str) and fragment:
            pending.args.append(fragment)

    def add_chunks(self, chunks: list[dict[str, Any]]) -> None:
        for ch in chunks:
            if isinstance(ch, dict):
                self.add_chunk(ch)

    def finalize(self) -> tuple[list[ToolCall], list[InvalidToolCall]]:
        """Return `(tool_calls, invalid_tool_calls)` in first-seen order."""

        tool_calls: list[ToolCall] = []
        invalid: list[InvalidToolCall] = []

        for pending in self._pending.values():
            raw = "".join(pending.args)
            try:
                parsed = json.loads(raw) if raw.strip() else {}
                if not isinstance(parsed, dict):
                    raise ValueError("tool args must be a JSON object")
                if not pending.name:
                    raise ValueError("missing tool name")
            except ValueError as exc:
                invalid.append(InvalidToolCall(id=pending.id, name=pending.name, raw_args=raw, error=str(exc)))
                continue

            tool_calls.append(
                ToolCall(
                    id=pending.id or new_tool_call_id(),
                    name=pending.name,
                    arguments=parsed,
                    arguments_json=raw or "{}",
                )
            )

        return tool_calls, invalid
