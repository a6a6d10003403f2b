from __future__ import annotations

from app.ai.config import ModelConfig, get_model_config, parse_model_key, resolve_api_key
from app.ai.types import AIProvider, AIProviderError
from app.core.config import settings

from app.ai.providers.openai_provider import OpenAIProvider
from app.ai.providers.claude_provider import ClaudeProvider
from app.ai.providers.gemini_provider import GeminiProvider

_OPENAI_COMPATIBLE = {"openai", "cerebras", "deepseek", "groq", "mistral", "openrouter"}


def create_provider(config: ModelConfig, api_key: str) -> AIProvider:
    if config.provider in _OPENAI_COMPATIBLE:
        return OpenAIProvider(
            model=config.model_id,
            api_key=api_key,
            base_url=config.base_url,
            provider=config.provider,
            timeout_s=settings.llm_timeout_s,
        )

    if config.provider == "anthropic":
        return ClaudeProvider(model=config.model_id, api_key=api_key, timeout_s=settings.llm_timeout_s)

    if config.provider == "gemini":
        return GeminiProvider(model=config.model_id, api_key=api_key)

    raise ValueError(f"Unsupported provider='{config.provider}'")


def get_model_provider(model_key: str, api_keys: dict[str, str] | None = None) -> AIProvider:
    """Build a provider for ``provider:modelId``.

    Unknown models and missing keys raise :class:`AIProviderError` with a 404
    or 403 status so the fallback chain moves on to the next model.
    """
    config = get_model_config(model_key)
    if config is None:
        provider, _ = parse_model_key(model_key)
        raise AIProviderError(f"Model {model_key} not found", status=404, provider=provider)

    api_key = resolve_api_key(config, api_keys)
    if not api_key:
        raise AIProviderError(
            f"{config.api_key_env_var} is missing for {model_key}",
            status=403,
            provider=config.provider,
        )
    return create_provider(config, api_key)
