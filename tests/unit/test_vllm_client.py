from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from ergon.core.errors import LLMError
from ergon.core.types import CompletionRequest, Message, Provider
from ergon.llm.vllm_client import VllmClient


def test_list_models_returns_the_configured_model() -> None:
    client = VllmClient(endpoint="http://localhost:8000/v1/", model="google/gemma-3-270m")

    (model,) = asyncio.run(client.list_models())

    assert model.name == model.id == "google/gemma-3-270m"
    assert model.provider is Provider.VLLM


def test_unconfigured_model_is_an_error() -> None:
    client = VllmClient(endpoint="http://localhost:8000/v1/", model="")
    with pytest.raises(LLMError, match="vLLM model is not configured"):
        asyncio.run(client.list_models())


def test_sdk_gets_placeholder_key_and_endpoint() -> None:
    client = VllmClient(endpoint="http://gpu-box:8000/v1/", model="m")
    sdk = client.client
    assert sdk.api_key == "EMPTY"
    assert str(sdk.base_url).startswith("http://gpu-box:8000/v1")


def test_completion_needs_no_api_key() -> None:
    calls: list[dict[str, Any]] = []

    async def create(**kwargs: Any) -> Any:
        calls.append(kwargs)
        return SimpleNamespace(
            id="cmpl-v",
            object="chat.completion",
            created=1,
            model="m",
            choices=[SimpleNamespace(index=0, finish_reason="stop", message=SimpleNamespace(content="ok", tool_calls=None))],
        )

    sdk = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    client = VllmClient(endpoint="http://localhost:8000/v1/", model="m", client=sdk)

    resp = asyncio.run(client.complete_message(CompletionRequest(model="m", messages=[Message.user("hi")])))

    assert resp.messages[0].text == "ok"
    assert calls[0]["model"] == "m"
