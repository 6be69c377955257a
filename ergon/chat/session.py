from __future__ import annotations

from dataclasses import dataclass, field

from ergon.core.types import Message, ModelInfo, Tool
from ergon.llm.manager import ModelManager
from ergon.observability import get_logger

from .orchestrator import ChatOrchestrator, TextCallback, TurnOutput


log = get_logger("ergon.chat")


@dataclass
class ChatSession:
    """State of the chat screen: the conversation, the input box and the model picker."""

    models: ModelManager
    orchestrator: ChatOrchestrator
    messages: list[Message] = field(default_factory=list)
    input_value: str = ""
    awaiting_response: bool = False
    selected_model: str | None = None
    available_models: list[ModelInfo] = field(default_factory=list)
    tools: list[Tool] = field(default_factory=list)

    def set_input(self, value: str) -> None:
        self.input_value = value

    async def load_models(self) -> list[ModelInfo]:
        self.available_models = await self.models.load_models()
        if self.selected_model is None and self.available_models:
            self.selected_model = self.available_models[0].name
        self.awaiting_response = False
        return list(self.available_models)

    def select_model(self, name: str) -> ModelInfo | None:
        """Select by display name. Unknown names leave the selection unchanged."""

        model = self._find(name)
        if model is not None:
            self.selected_model = model.name
        return model

    def _find(self, name: str | None) -> ModelInfo | None:
        if not name:
            return None
        for m in self.available_models:
            if m.name == name:
                return m
        return self.models.find_model(name)

    def current_model(self) -> ModelInfo:
        return self._find(self.selected_model) or self.models.resolve_model(self.selected_model)

    async def load_tools(self) -> list[Tool]:
        gateway = self.orchestrator.gateway
        self.tools = await gateway.load() if gateway is not None else []
        return list(self.tools)

    async def send_message(self, text: str | None = None, *, on_text: TextCallback | None = None) -> TurnOutput | None:
        if text is not None:
            self.input_value = text
        content = self.input_value.strip()
        if not content:
            return None

        self.messages.append(Message.user(content))
        self.awaiting_response = True
        model = self.current_model()
        log.debug("sending message", model=model.id, provider=model.provider.value, history=len(self.messages))
        try:
            output = await self.orchestrator.run_turn(list(self.messages), model=model, on_text=on_text)
        except BaseException:
            # A failed turn leaves no user message behind.
            self.messages.pop()
            raise
        finally:
            self.input_value = ""
            self.awaiting_response = False

        self.messages.extend(output.new_messages)
        return output

    def clear(self) -> None:
        self.messages.clear()
        self.input_value = ""
        self.awaiting_response = False
