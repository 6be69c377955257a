from __future__ import annotations

import pytest

from ergon.core.types import (
    CompletionResponse,
    ImageUrlContent,
    Message,
    TextContent,
    ToolCall,
    ToolResultContent,
    ToolUseContent,
    content_from_dict,
)


def test_tool_result_omits_is_error_when_unset() -> None:
    assert ToolResultContent(tool_use_id="t1", content="ok").to_dict() == {
        "type": "tool_result",
        "tool_use_id": "t1",
        "content": "ok",
    }
    assert ToolResultContent(tool_use_id="t1", content="boom", is_error=True).to_dict()["is_error"] is True


def test_content_blocks_parse_from_tagged_dicts() -> None:
    blocks = [
        TextContent("hi"),
        ImageUrlContent(url="https://example.invalid/cat.png", detail="low"),
        ToolUseContent(id="tu_1", name="weather", input={"city": "Oslo"}),
        ToolResultContent(tool_use_id="tu_1", content="rain", is_error=False),
    ]
    for block in blocks:
        assert content_from_dict(block.to_dict()) == block


def test_unknown_content_type_is_rejected() -> None:
    with pytest.raises(ValueError):
        content_from_dict({"type": "audio", "data": "..."})


def test_message_text_joins_text_blocks_only() -> None:
    m = Message(role="user", content=[TextContent("a"), ImageUrlContent(url="u"), TextContent("b")])
    assert m.text == "a\nb"


def test_message_to_dict_omits_unset_fields() -> None:
    assert Message.user("hi").to_dict() == {"role": "user", "content": [{"type": "text", "text": "hi"}]}

    call = ToolCall.from_arguments(id="c1", name="add", arguments={"a": 1})
    d = Message.assistant("", tool_calls=[call]).to_dict()
    assert d["content"] == []
    assert d["tool_calls"][0]["function"] == {"name": "add", "arguments": '{"a": 1}'}

    t = Message.tool("c1", "3").to_dict()
    assert t["tool_call_id"] == "c1"
    assert "is_error" not in t["content"][0]


def test_failed_response_shape() -> None:
    r = CompletionResponse.failed(RuntimeError("connection refused"))
    assert (r.id, r.object, r.created, r.model, r.choices) == ("error", "connection refused", 0, "", [])
    assert r.is_error
    assert r.messages == []
    assert r.tool_calls == []
