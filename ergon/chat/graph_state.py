from __future__ import annotations

import operator
from typing import Annotated

from typing_extensions import TypedDict

from ergon.core.types import CompletionResponse, Message, ToolCall, ToolResult


class TurnState(TypedDict, total=False):
    # Conversation before this turn, ending with the user's message
    history: list[Message]

    # COMPLETE outputs
    response: CompletionResponse
    pending_tool_calls: list[ToolCall]
    rounds: int

    # Accumulated turn artifacts
    new_messages: Annotated[list[Message], operator.add]
    tool_results: Annotated[list[ToolResult], operator.add]
    errors: Annotated[list[str], operator.add]
    executed_calls: Annotated[int, operator.add]
