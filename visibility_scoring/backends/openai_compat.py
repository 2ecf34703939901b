"""OpenAI-compatible chat completion backends (OpenRouter, OpenAI).

Both are stateless HTTP APIs that tolerate concurrent calls, so they are
declared safe for batch mode.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from visibility_scoring.analysis.schema import parse_analysis_payload
from visibility_scoring.analysis.types import AnalysisRequest, AnalysisResult
from visibility_scoring.backends.base import AnalysisBackend
from visibility_scoring.backends.prompt import build_analysis_prompt
from visibility_scoring.core.errors import BackendError, BackendResponseError, TransientError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------


class _ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class _ChatChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: _ChatMessage


class ChatCompletionEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: list[_ChatChoice] = Field(min_length=1)
    model: str | None = None


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class ChatCompletionsBackend(AnalysisBackend):
    """Shared transport for /chat/completions style APIs."""

    concurrency_safe = True
    temperature = 0.1
    max_tokens = 4096

    def __init__(self, api_key: str, *, model: str, api_url: str, timeout: float = 120.0, max_chars: int = 50_000):
        if not api_key:
            raise ValueError(f"{self.name} backend requires an API key")
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.max_chars = max_chars

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _analyze(self, request: AnalysisRequest) -> AnalysisResult:
        system_prompt, user_prompt = build_analysis_prompt(request, self.max_chars)
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.api_url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise TransientError(f"{self.name}: Timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise TransientError(f"{self.name}: network error: {e}") from e

        if resp.status_code == 429:
            raise TransientError(f"{self.name}: rate limited (429)")
        if resp.status_code >= 500:
            raise TransientError(f"{self.name}: server error {resp.status_code}")
        if resp.status_code >= 400:
            raise BackendError(
                f"{self.name}: HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
                backend=self.name,
            )

        try:
            envelope = ChatCompletionEnvelope.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise BackendResponseError(f"{self.name}: unexpected response shape", backend=self.name) from e

        content = envelope.choices[0].message.content or ""
        return parse_analysis_payload(content, backend=self.name)


class OpenRouterBackend(ChatCompletionsBackend):
    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "openai/gpt-4o-mini",
        api_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: float = 120.0,
        max_chars: int = 50_000,
        site_url: str = "",
        site_title: str = "",
    ):
        super().__init__(api_key, model=model, api_url=api_url, timeout=timeout, max_chars=max_chars)
        self.site_url = site_url
        self.site_title = site_title

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        if self.site_title:
            headers["X-Title"] = self.site_title
        return headers


class OpenAIBackend(ChatCompletionsBackend):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o-mini",
        api_url: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 120.0,
        max_chars: int = 50_000,
    ):
        super().__init__(api_key, model=model, api_url=api_url, timeout=timeout, max_chars=max_chars)
