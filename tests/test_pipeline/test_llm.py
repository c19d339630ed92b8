from __future__ import annotations

from typing import Any

import httpx
import pytest

from order_intake.config import Settings
from order_intake.errors import ClassificationError, ConfigurationMissing
from order_intake.pipeline import llm as llm_module
from order_intake.pipeline.llm import ANTHROPIC_MESSAGES_URL, OPENAI_CHAT_URL, LLMRouter
from tests.fixtures.intake_fakes import FakeHTTPClient


def _openai_reply(text: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"content": text}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 5},
        },
    )


def _install(monkeypatch: pytest.MonkeyPatch, client: FakeHTTPClient) -> None:
    def _factory(**kwargs: Any) -> FakeHTTPClient:
        return client

    monkeypatch.setattr(llm_module.httpx, "AsyncClient", _factory)


def _settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"openai_api_key": "sk-test", "llm_retry_backoff_base_seconds": 0.0}
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_openai_completion_maps_usage(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient([_openai_reply('{"isOrder": false}')])
    _install(monkeypatch, client)

    response = await LLMRouter(_settings()).complete(prompt="hi", system_prompt="sys")

    assert response.text == '{"isOrder": false}'
    assert response.model == "gpt-4"
    assert (response.input_tokens, response.output_tokens) == (12, 5)
    sent = client.requests[0]
    assert sent["url"] == OPENAI_CHAT_URL
    assert sent["headers"]["Authorization"] == "Bearer sk-test"
    assert sent["json"]["messages"][0] == {"role": "system", "content": "sys"}
    assert sent["json"]["temperature"] == 0.1
    assert sent["json"]["max_tokens"] == 500


@pytest.mark.asyncio
async def test_transient_status_is_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient([httpx.Response(503), _openai_reply("ok")])
    _install(monkeypatch, client)

    response = await LLMRouter(_settings()).complete(prompt="hi")

    assert response.text == "ok"
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_non_retriable_status_falls_through_to_fallback_model(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient(
        [
            httpx.Response(401),
            httpx.Response(200, json={"content": [{"text": "from claude"}], "usage": {"input_tokens": 3}}),
        ]
    )
    _install(monkeypatch, client)
    router = LLMRouter(_settings(classification_fallback_model="claude-sonnet", anthropic_api_key="ak-test"))

    response = await router.complete(prompt="hi")

    assert response.model == "claude-sonnet"
    assert response.text == "from claude"
    assert [request["url"] for request in client.requests] == [OPENAI_CHAT_URL, ANTHROPIC_MESSAGES_URL]
    assert client.requests[1]["headers"]["x-api-key"] == "ak-test"


@pytest.mark.asyncio
async def test_all_models_failing_raises_classification_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = FakeHTTPClient([httpx.ConnectError("refused")] * 3)
    _install(monkeypatch, client)

    with pytest.raises(ClassificationError):
        await LLMRouter(_settings()).complete(prompt="hi")
    assert len(client.requests) == 3


@pytest.mark.asyncio
async def test_missing_key_is_configuration_error() -> None:
    router = LLMRouter(Settings())
    assert not router.configured
    with pytest.raises(ConfigurationMissing):
        await router._call_completion_api(model="gpt-4", prompt="hi")
