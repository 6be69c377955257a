from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Provider(str, Enum):
    """LLM backends a model can be served by."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    VLLM = "vllm"


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """A selectable model. `name` is shown to the user, `id` is sent to the API."""

    name: str
    id: str
    provider: Provider = Provider.OPENAI


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True, slots=True)
class ImageUrlContent:
    url: str
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        image_url: dict[str, Any] = {"url": self.url}
        if self.detail is not None:
            image_url["detail"] = self.detail
        return {"type": "image_url", "image_url": image_url}


@dataclass(frozen=True, slots=True)
class ToolUseContent:
    id: str
    name: str
    input: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True, slots=True)
class ToolResultContent:
    tool_use_id: str
    content: str
    is_error: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error is not None:
            out["is_error"] = self.is_error
        return out


Content = Union[TextContent, ImageUrlContent, ToolUseContent, ToolResultContent]


def content_from_dict(raw: dict[str, Any]) -> Content:
    """Parse a `type`-tagged content block."""

    kind = raw.get("type")
    if kind == "text":
        return TextContent(text=str(raw.get("text", "")))
    if kind == "image_url":
        image_url = raw.get("image_url") or {}
        return ImageUrlContent(url=str(image_url.get("url", "")), detail=image_url.get("detail"))
    if kind == "tool_use":
        return ToolUseContent(id=str(raw["id"]), name=str(raw["name"]), input=dict(raw.get("input") or {}))
    if kind == "tool_result":
        return ToolResultContent(
            tool_use_id=str(raw["tool_use_id"]),
            content=str(raw.get("content", "")),
            is_error=raw.get("is_error"),
        )
    raise ValueError(f"unknown content type: {kind!r}")


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]
    arguments_json: str = ""

    @classmethod
    def from_arguments(cls, *, id: str, name: str, arguments: dict[str, Any]) -> "ToolCall":
        return cls(id=id, name=name, arguments=arguments, arguments_json=json.dumps(arguments, ensure_ascii=False))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.arguments_json or json.dumps(self.arguments, ensure_ascii=False),
            },
        }


@dataclass(slots=True)
class Message:
    role: str
    content: list[Content] = field(default_factory=list)
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role="system", content=[TextContent(str(text))])

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=[TextContent(str(text))])

    @classmethod
    def assistant(cls, text: str, *, tool_calls: list[ToolCall] | None = None) -> "Message":
        content: list[Content] = [TextContent(str(text))] if text else []
        return cls(role="assistant", content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, content: str, *, is_error: bool = False) -> "Message":
        block = ToolResultContent(tool_use_id=tool_call_id, content=content, is_error=True if is_error else None)
        return cls(role="tool", content=[block], tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role, "content": [c.to_dict() for c in self.content]}
        if self.tool_calls:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id
        return out


@dataclass(frozen=True, slots=True)
class Tool:
    """A tool offered to the model. `parameters` is a JSON schema object."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(slots=True)
class CompletionRequest:
    model: str
    messages: list[Message]
    temperature: float | None = None
    tools: list[Tool] | None = None


@dataclass(slots=True)
class Choice:
    index: int
    messages: list[Message]
    finish_reason: str


@dataclass(slots=True)
class CompletionResponse:
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]

    @classmethod
    def failed(cls, error: BaseException | str) -> "CompletionResponse":
        return cls(id="error", object=str(error), created=0, model="", choices=[])

    @property
    def is_error(self) -> bool:
        return self.id == "error" and not self.choices

    @property
    def messages(self) -> list[Message]:
        return list(self.choices[0].messages) if self.choices else []

    @property
    def tool_calls(self) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for m in self.messages:
            calls.extend(m.tool_calls or [])
        return calls


@dataclass(frozen=True, slots=True)
class ToolResult:
    tool_call_id: str
    name: str
    ok: bool
    content: dict[str, Any]
    error: dict[str, Any] | None = None
