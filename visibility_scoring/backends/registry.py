"""Builds the configured backends and picks one per brand."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from visibility_scoring.analysis.types import BrandRecord
from visibility_scoring.backends.base import AnalysisBackend
from visibility_scoring.backends.fallback import FallbackBackend
from visibility_scoring.backends.ollama import OllamaBackend
from visibility_scoring.backends.openai_compat import OpenAIBackend, OpenRouterBackend
from visibility_scoring.core.config import Settings, settings as default_settings
from visibility_scoring.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class BackendSet:
    """The batch-safe backend (possibly a fallback chain) and the optional serial one."""

    batch: AnalysisBackend | None = None
    serial: AnalysisBackend | None = None

    def select(self, brand: BrandRecord | None) -> AnalysisBackend:
        """Serial backend for brands that opted in (and were not disabled), batch backend otherwise."""
        if brand is not None and brand.wants_local_backend and self.serial is not None:
            return self.serial
        if self.batch is not None:
            if brand is not None and brand.wants_local_backend:
                logger.info("Brand %s prefers the local backend but none is configured", brand.id)
            return self.batch
        if self.serial is not None and not (brand is not None and brand.local_backend_disabled):
            return self.serial
        raise ConfigurationError("No analysis backend available")


def build_backends(config: Settings | None = None) -> BackendSet:
    config = config or default_settings
    chain: list[AnalysisBackend] = []
    if config.openrouter_api_key:
        chain.append(
            OpenRouterBackend(
                config.openrouter_api_key,
                model=config.openrouter_model,
                api_url=config.openrouter_url,
                timeout=config.openrouter_timeout_seconds,
                max_chars=config.scoring_max_answer_chars,
                site_url=config.openrouter_site_url,
                site_title=config.openrouter_site_title,
            )
        )
    if config.openai_api_key:
        chain.append(
            OpenAIBackend(
                config.openai_api_key,
                model=config.openai_model,
                api_url=config.openai_url,
                timeout=config.openai_timeout_seconds,
                max_chars=config.scoring_max_answer_chars,
            )
        )

    batch: AnalysisBackend | None = None
    if len(chain) == 1:
        batch = chain[0]
    elif chain:
        batch = FallbackBackend(chain)

    serial = None
    if config.ollama_enabled:
        serial = OllamaBackend(
            base_url=config.ollama_url,
            model=config.ollama_model,
            timeout=config.ollama_timeout_seconds,
            max_chars=config.scoring_max_answer_chars,
        )

    logger.info(
        "Analysis backends: batch=%s serial=%s",
        batch.name if batch else None,
        serial.name if serial else None,
    )
    return BackendSet(batch=batch, serial=serial)
