"""Ollama backend: a locally hosted model reached over its HTTP API.

A local model serves one request at a time, so this backend is declared
serialize-only and every call goes through the process-wide single-flight
queue, even when several pipelines run in the same process.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from visibility_scoring.analysis.schema import parse_analysis_payload
from visibility_scoring.analysis.types import AnalysisRequest, AnalysisResult
from visibility_scoring.backends.base import AnalysisBackend
from visibility_scoring.backends.prompt import build_analysis_prompt
from visibility_scoring.backends.single_flight import SingleFlightQueue, get_single_flight_queue
from visibility_scoring.core.errors import BackendError, BackendResponseError, TransientError

logger = logging.getLogger(__name__)


class _OllamaMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str


class OllamaChatEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: _OllamaMessage
    model: str | None = None


class OllamaBackend(AnalysisBackend):
    name = "ollama"
    concurrency_safe = False
    temperature = 0.1

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:latest",
        timeout: float = 300.0,
        max_chars: int = 50_000,
        queue: SingleFlightQueue | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_chars = max_chars
        self.queue = queue or get_single_flight_queue(self.name)

    async def _analyze(self, request: AnalysisRequest) -> AnalysisResult:
        return await self.queue.run(lambda: self._chat(request))

    async def _chat(self, request: AnalysisRequest) -> AnalysisResult:
        system_prompt, user_prompt = build_analysis_prompt(request, self.max_chars)
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=payload)
        except httpx.TimeoutException as e:
            raise TransientError(f"ollama: Timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise TransientError(f"ollama: network error: {e}") from e

        if resp.status_code >= 500:
            raise TransientError(f"ollama: server error {resp.status_code}")
        if resp.status_code >= 400:
            raise BackendError(
                f"ollama: HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
                backend=self.name,
            )

        try:
            envelope = OllamaChatEnvelope.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise BackendResponseError("ollama: response has no message content", backend=self.name) from e

        return parse_analysis_payload(envelope.message.content, backend=self.name)

    async def check_health(self) -> bool:
        """True when the server answers and the configured model is installed."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            resp.raise_for_status()
            models = resp.json().get("models", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Ollama health check failed at %s: %s", self.base_url, e)
            return False

        names = {m.get("name") for m in models if isinstance(m, dict)}
        if self.model not in names:
            logger.warning("Ollama model %s not installed (available: %s)", self.model, sorted(n for n in names if n))
            return False
        return True
