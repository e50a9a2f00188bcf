"""Model transports and a config-driven factory."""

from __future__ import annotations

import os

from ledgerbot.config import LLMProviderConfig
from ledgerbot.llm.providers.base import Provider
from ledgerbot.llm.providers.openai_compat import (
    DEFAULT_BASE_URLS,
    DEFAULT_MODELS,
    OpenAICompatProvider,
)

OPENAI_COMPATIBLE = {"openai", "deepseek", "custom"}


def create_provider(cfg: LLMProviderConfig) -> Provider:
    """Build the provider named by ``cfg.provider``."""
    if cfg.provider not in OPENAI_COMPATIBLE:
        raise ValueError(
            f"Unknown LLM provider {cfg.provider!r}. "
            f"Supported: {sorted(OPENAI_COMPATIBLE)}"
        )
    url = cfg.api_base or DEFAULT_BASE_URLS.get(cfg.provider, "")
    if not url:
        raise ValueError(f"Provider {cfg.provider!r} requires llm.api_base")
    return OpenAICompatProvider(
        url=url,
        model=cfg.model or DEFAULT_MODELS.get(cfg.provider, ""),
        api_key=os.environ.get(cfg.api_key_env, ""),
        timeout=float(cfg.timeout_seconds),
        max_retries=cfg.max_retries,
        provider_name=cfg.provider,
    )


__all__ = ["OpenAICompatProvider", "Provider", "create_provider"]
