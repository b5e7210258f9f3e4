"""
Provider Manager — picks and caches the chat provider for /api/chat.

CHAT_PROVIDER selects the back end:
  google     — Gemini via google-genai (default)
  openai     — OpenAI chat completions
  anthropic  — Claude messages API

CHAT_MODEL overrides the provider's default model. The instance is cached per
(provider, model, key), so rotating the key in the environment (or in
config during tests) builds a fresh client on the next request.
"""
from __future__ import annotations

import logging
from typing import Optional

import config
from providers.base import ChatProvider

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ("google", "openai", "anthropic")

_cache: dict[tuple[str, str, str], ChatProvider] = {}


def credential_for(name: Optional[str] = None) -> Optional[str]:
    """Return the API key for provider name (default: config.CHAT_PROVIDER)."""
    name = name or config.CHAT_PROVIDER
    if name == "google":
        return config.GOOGLE_GENERATIVE_AI_API_KEY
    if name == "openai":
        return config.OPENAI_API_KEY
    if name == "anthropic":
        return config.ANTHROPIC_API_KEY
    return None


def _build(name: str, api_key: str, model: Optional[str]) -> ChatProvider:
    if name == "google":
        from providers.gemini_provider import DEFAULT_MODEL, GeminiProvider
        return GeminiProvider(api_key, model or DEFAULT_MODEL)
    if name == "openai":
        from providers.openai_provider import DEFAULT_MODEL, OpenAIProvider
        return OpenAIProvider(api_key, model or DEFAULT_MODEL)
    if name == "anthropic":
        from providers.anthropic_provider import DEFAULT_MODEL, AnthropicProvider
        return AnthropicProvider(api_key, model or DEFAULT_MODEL)
    raise ValueError(
        f"Unknown CHAT_PROVIDER '{name}'. Available: {', '.join(PROVIDER_NAMES)}"
    )


def get_provider() -> ChatProvider:
    name = config.CHAT_PROVIDER
    api_key = credential_for(name)
    if not api_key:
        raise RuntimeError(f"No API key configured for provider '{name}'")

    cache_key = (name, config.CHAT_MODEL or "", api_key)
    provider = _cache.get(cache_key)
    if provider is None:
        provider = _build(name, api_key, config.CHAT_MODEL)
        _cache.clear()
        _cache[cache_key] = provider
        logger.info("Loaded provider: %s", provider.full_name)
    return provider


def reset() -> None:
    _cache.clear()
