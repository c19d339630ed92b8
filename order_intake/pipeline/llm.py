from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel

from order_intake.config import Settings, get_settings
from order_intake.errors import ClassificationError, ConfigurationMissing

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"


class LLMResponse(BaseModel):
    text: str
    model: str
    input_tokens: int
    output_tokens: int


class LLMRouter:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.transient_status_codes = self.settings.llm_transient_status_code_set()
        self.non_retriable_status_codes = self.settings.llm_non_retriable_status_code_set()

    def _models(self) -> list[str]:
        primary = self.settings.classification_model
        fallback = self.settings.classification_fallback_model
        return [primary] + ([fallback] if fallback and fallback != primary else [])

    def _provider_for_model(self, model: str) -> str:
        if "claude" in model.lower():
            return "anthropic"
        return "openai"

    def _api_key_for(self, provider: str) -> str | None:
        if provider == "anthropic":
            return self.settings.anthropic_api_key
        return self.settings.openai_api_key

    @property
    def configured(self) -> bool:
        return any(self._api_key_for(self._provider_for_model(model)) for model in self._models())

    async def _call_completion_api(
        self,
        *,
        model: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 500,
        temperature: float = 0.0,
        timeout_s: float = 60.0,
    ) -> dict[str, Any]:
        provider = self._provider_for_model(model)
        api_key = self._api_key_for(provider)
        if not api_key:
            raise ConfigurationMissing(f"No API key configured for provider={provider}")

        async with httpx.AsyncClient(timeout=timeout_s) as client:
            if provider == "anthropic":
                body: dict[str, Any] = {
                    "model": model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                }
                if system_prompt:
                    body["system"] = system_prompt
                response = await client.post(
                    ANTHROPIC_MESSAGES_URL,
                    json=body,
                    headers={"x-api-key": api_key, "anthropic-version": "2023-06-01"},
                )
                response.raise_for_status()
                payload = response.json()
                text = payload.get("content", [{}])[0].get("text", "")
                usage = payload.get("usage", {})
                return {"text": text, "usage": usage}

            messages: list[dict[str, str]] = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            response = await client.post(
                OPENAI_CHAT_URL,
                json={"model": model, "messages": messages, "max_tokens": max_tokens, "temperature": temperature},
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()
            text = payload["choices"][0]["message"]["content"]
            usage = payload.get("usage", {})
            return {
                "text": text,
                "usage": {
                    "input_tokens": usage.get("prompt_tokens", 0),
                    "output_tokens": usage.get("completion_tokens", 0),
                },
            }

    async def _call_with_retries(
        self,
        *,
        model: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 500,
        temperature: float = 0.0,
        timeout_s: float = 60.0,
    ) -> dict[str, Any]:
        backoff = self.settings.llm_retry_backoff_base_seconds
        last_exc: Exception | None = None
        for attempt in range(self.settings.llm_max_retries):
            try:
                return await self._call_completion_api(
                    model=model,
                    prompt=prompt,
                    system_prompt=system_prompt,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout_s=timeout_s,
                )
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code in self.non_retriable_status_codes:
                    raise
                if exc.response.status_code in self.transient_status_codes:
                    last_exc = exc
                    await asyncio.sleep(backoff * (2**attempt))
                    continue
                raise
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_exc = exc
                await asyncio.sleep(backoff * (2**attempt))
                continue
        raise last_exc or ClassificationError(f"Retries exhausted for model={model}")

    async def complete(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout_s: float | None = None,
    ) -> LLMResponse:
        errors: list[Exception] = []
        for model in self._models():
            try:
                payload = await self._call_with_retries(
                    model=model,
                    prompt=prompt,
                    system_prompt=system_prompt,
                    max_tokens=max_tokens or self.settings.classification_max_tokens,
                    temperature=(
                        self.settings.classification_temperature if temperature is None else temperature
                    ),
                    timeout_s=timeout_s or self.settings.llm_completion_timeout_seconds,
                )
                usage = payload.get("usage", {})
                return LLMResponse(
                    text=payload["text"] or "",
                    model=model,
                    input_tokens=int(usage.get("input_tokens", 0)),
                    output_tokens=int(usage.get("output_tokens", 0)),
                )
            except Exception as exc:
                errors.append(exc)
                logger.warning("Model %s failed: %s", model, exc)
        raise ClassificationError(f"All completion models failed: {errors}")
