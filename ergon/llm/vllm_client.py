from __future__ import annotations

from openai import AsyncOpenAI

from ergon.core.errors import LLMError
from ergon.core.types import ModelInfo, Provider

from .openai_compatible import OpenAICompatibleClient


# vLLM does not check keys but the SDK refuses to start without one.
PLACEHOLDER_API_KEY = "EMPTY"


class VllmClient(OpenAICompatibleClient):
    """A vLLM server's OpenAI-compatible API, serving one configured model."""

    provider = Provider.VLLM

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        client: AsyncOpenAI | None = None,
        timeout_s: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        super().__init__(api_key="", endpoint=endpoint, client=client, timeout_s=timeout_s, max_retries=max_retries)
        self.model = model

    def _sdk_api_key(self) -> str:
        return PLACEHOLDER_API_KEY

    async def list_models(self) -> list[ModelInfo]:
        if not self.model:
            raise LLMError("vLLM model is not configured")
        return [ModelInfo(name=self.model, id=self.model, provider=Provider.VLLM)]
