from __future__ import annotations

from openai import APIError

from ergon.core.errors import LLMAuthError
from ergon.core.types import ModelInfo, Provider

from .openai_compatible import OpenAICompatibleClient, map_openai_error


class OpenAIClient(OpenAICompatibleClient):
    """api.openai.com (or any endpoint that wants an OpenAI key)."""

    provider = Provider.OPENAI

    def _check_ready(self) -> None:
        if not self.api_key:
            raise LLMAuthError("API key is not set")

    async def list_models(self) -> list[ModelInfo]:
        """Chat models only: ids containing `gpt`."""

        self._check_ready()
        try:
            page = await self.client.models.list()
        except APIError as e:
            raise map_openai_error(e) from e
        return [ModelInfo(name=m.id, id=m.id, provider=Provider.OPENAI) for m in page.data if "gpt" in m.id]
