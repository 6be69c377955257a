from __future__ import annotations

import json
from typing import Any

from ergon.core.types import ToolResult


MAX_TEXT_CHARS = 2000


def _is_json_friendly(obj: Any) -> bool:
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return True
    if isinstance(obj, list):
        return all(_is_json_friendly(v) for v in obj)
    if isinstance(obj, dict):
        return all(isinstance(k, str) and _is_json_friendly(v) for k, v in obj.items())
    return False


def make_payload(*, text: str, data: Any, raw: Any, meta: dict[str, Any]) -> dict[str, Any]:
    """Build a ToolResult.content payload.

    Always a JSON-friendly dict with `text` (model-readable), `data` (the main
    structured output), `raw` (the original output) and `meta` (routing info).
    Anything that is not JSON-friendly is replaced by its repr.
    """

    return {
        "text": str(text or ""),
        "data": data if _is_json_friendly(data) else {"value": repr(data)},
        "raw": raw if _is_json_friendly(raw) else repr(raw),
        "meta": meta if _is_json_friendly(meta) else {"value": repr(meta)},
    }


def payload_from_output(output: Any, *, meta: dict[str, Any]) -> dict[str, Any]:
    if isinstance(output, str):
        return make_payload(text=output, data={"text": output}, raw=output, meta=meta)

    if _is_json_friendly(output):
        text = json.dumps(output, ensure_ascii=False)
        if len(text) > MAX_TEXT_CHARS:
            text = text[:MAX_TEXT_CHARS] + "..."
        return make_payload(text=text, data=output, raw=output, meta=meta)

    return make_payload(text=repr(output), data={"value": repr(output)}, raw=output, meta=meta)


def normalize_error(*, error_type: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"type": str(error_type), "message": str(message), "details": dict(details or {})}


def error_result(
    *,
    tool_call_id: str,
    name: str,
    error_type: str,
    message: str,
    text: str,
    meta: dict[str, Any] | None = None,
    details: dict[str, Any] | None = None,
    raw: Any = None,
) -> ToolResult:
    payload = make_payload(
        text=text,
        data={},
        raw=raw if raw is not None else {},
        meta=meta or {"tool_call_id": tool_call_id, "tool_name": name},
    )
    return ToolResult(
        tool_call_id=tool_call_id,
        name=name,
        ok=False,
        content=payload,
        error=normalize_error(error_type=error_type, message=message, details=details),
    )


def dumps_payload(payload: dict[str, Any]) -> str:
    """Compact JSON for a tool message. Never a Python repr."""

    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def tool_message_content(result: ToolResult) -> str:
    if result.ok or result.error is None:
        return dumps_payload(result.content)
    return dumps_payload({**result.content, "error": result.error})
