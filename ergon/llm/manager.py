from __future__ import annotations

from typing import AsyncIterator, Mapping

from ergon.config.settings import Settings
from ergon.core.errors import LLMError
from ergon.core.types import CompletionRequest, CompletionResponse, ModelInfo, Provider
from ergon.observability import get_logger

from .anthropic_client import AnthropicClient
from .base import LLMClient, StreamEvent
from .openai_client import OpenAIClient
from .vllm_client import VllmClient


DEFAULT_MODEL = ModelInfo(name="gpt-4o-mini", id="gpt-4o-mini", provider=Provider.OPENAI)

FALLBACK_MODELS: tuple[ModelInfo, ...] = (
    DEFAULT_MODEL,
    ModelInfo(name="Claude 3.5 Sonnet", id="claude-3-5-sonnet-20241022", provider=Provider.ANTHROPIC),
)

# Query order for fetch_models().
PROVIDER_ORDER: tuple[Provider, ...] = (Provider.OPENAI, Provider.ANTHROPIC, Provider.VLLM)


log = get_logger("ergon.llm.models")


class ModelManager:
    """Registry of provider clients and the models they offer."""

    def __init__(self, clients: Mapping[Provider, LLMClient]) -> None:
        self._clients = dict(clients)
        self._models: list[ModelInfo] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelManager":
        return cls(
            {
                Provider.OPENAI: OpenAIClient(
                    api_key=settings.openai.resolved_api_key(),
                    endpoint=settings.openai.endpoint,
                ),
                Provider.ANTHROPIC: AnthropicClient(
                    api_key=settings.anthropic.resolved_api_key(),
                    endpoint=settings.anthropic.endpoint,
                    max_tokens=settings.anthropic.max_tokens,
                ),
                Provider.VLLM: VllmClient(endpoint=settings.vllm.endpoint, model=settings.vllm.model),
            }
        )

    def client_for(self, provider: Provider) -> LLMClient:
        client = self._clients.get(provider)
        if client is None:
            raise LLMError(f"No client configured for provider {provider.value}")
        return client

    async def fetch_models(self) -> list[ModelInfo]:
        """Ask every provider for its models. A failing provider is skipped."""

        models: list[ModelInfo] = []
        for provider in PROVIDER_ORDER:
            client = self._clients.get(provider)
            if client is None:
                continue
            try:
                found = await client.list_models()
            except LLMError as e:
                log.warning("failed to fetch models", provider=provider.value, error=str(e))
                continue
            log.debug("fetched models", provider=provider.value, count=len(found))
            models.extend(found)

        self._models = models
        return list(models)

    async def load_models(self) -> list[ModelInfo]:
        models = await self.fetch_models()
        if not models:
            log.warning("no models available from any provider, using fallback list")
            self._models = list(FALLBACK_MODELS)
            return list(FALLBACK_MODELS)
        return models

    def get_models(self) -> list[ModelInfo]:
        return list(self._models)

    def find_model(self, name: str) -> ModelInfo | None:
        for m in self._models:
            if m.name == name:
                return m
        return None

    def resolve_model(self, name: str | None) -> ModelInfo:
        if name:
            found = self.find_model(name)
            if found is not None:
                return found
        return DEFAULT_MODEL

    async def complete_message(self, model: ModelInfo, request: CompletionRequest) -> CompletionResponse:
        return await self.client_for(model.provider).complete_message(request)

    async def stream_message(self, model: ModelInfo, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        async for event in self.client_for(model.provider).stream_message(request):
            yield event

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
