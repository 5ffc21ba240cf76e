"""OpenAI-compatible LLM client used by every generative step of the pipeline."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from deeptweet.config import settings
from deeptweet.errors import ConfigurationError, UpstreamError
from deeptweet.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class Completion:
    text: str
    usage: Usage


class LLMClient:
    """Thin async wrapper over ``AsyncOpenAI`` for chat completions and embeddings."""

    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _temperature_for_model(model: str) -> int:
        # Some GPT-5-compatible gateways reject temperature=0.
        lowered = (model or "").lower()
        if "gpt-5" in lowered:
            return 1
        return 0

    @staticmethod
    def _to_openai_messages(
        system: str,
        user: str,
        examples: list[dict[str, str]] | None = None,
    ) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = [{"role": "system", "content": system}]
        for example in examples or []:
            messages.append({"role": example["role"], "content": example["content"]})
        messages.append({"role": "user", "content": user})
        return messages

    async def complete(
        self,
        *,
        system: str,
        user: str,
        model: str | None = None,
        max_tokens: int = 1024,
        examples: list[dict[str, str]] | None = None,
        caller: str = "llm",
    ) -> Completion:
        active_model = model or get_model()
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=active_model,
                messages=self._to_openai_messages(system, user, examples),
                max_tokens=max_tokens,
                temperature=self._temperature_for_model(active_model),
            )
        except Exception as exc:
            log_service.log_llm_call(
                model=active_model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise UpstreamError(f"{caller} completion failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        text = ""
        if choices:
            text = getattr(choices[0].message, "content", None) or ""
        usage = getattr(response, "usage", None)
        mapped_usage = Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        log_service.log_llm_call(
            model=active_model,
            caller=caller,
            input_tokens=mapped_usage.input_tokens,
            output_tokens=mapped_usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return Completion(text=text.strip(), usage=mapped_usage)

    async def embed(self, texts: list[str], *, model: str | None = None) -> list[list[float]]:
        """Embed ``texts`` in one request; result order matches input order."""
        active_model = model or settings.embedding_model
        response = await self._client.embeddings.create(model=active_model, input=texts)
        rows = sorted(response.data, key=lambda item: getattr(item, "index", 0))
        return [list(map(float, row.embedding)) for row in rows]


def get_client() -> LLMClient:
    """Build a client for the configured OpenAI-compatible endpoint."""
    from openai import AsyncOpenAI

    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY not configured")
    base_url = settings.openai_base_url.strip() or "https://api.openai.com/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=base_url,
    )
    return LLMClient(openai_client)


def get_model() -> str:
    """Get the default generation model id."""
    return settings.default_model


_client: LLMClient | None = None


def client() -> LLMClient:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
