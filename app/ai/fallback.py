from __future__ import annotations

import logging
from typing import Callable, Sequence

from app.ai.config import DEFAULT_MODEL, FALLBACK_MODELS
from app.ai.factory import get_model_provider
from app.ai.types import (
    AIProvider,
    GenerateResult,
    ModelOptions,
    is_model_unavailable_error,
    is_rate_limit_error,
)
from app.ai.usage import UsageTracker, estimate_tokens, usage_tracker

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str, "dict[str, str] | None"], AIProvider]


def models_to_try(
    preferred_model: str | None,
    fallback_models: Sequence[str] = FALLBACK_MODELS,
    default_model: str = DEFAULT_MODEL,
) -> list[str]:
    """Preferred model first, then the default, then the fallback chain, each once."""
    ordered = [preferred_model or default_model, default_model, *fallback_models]
    return list(dict.fromkeys(key for key in ordered if key))


def generate_with_fallback(
    prompt: str,
    preferred_model: str | None = None,
    options: ModelOptions | None = None,
    api_keys: dict[str, str] | None = None,
    *,
    fallback_models: Sequence[str] = FALLBACK_MODELS,
    provider_factory: ProviderFactory = get_model_provider,
    tracker: UsageTracker = usage_tracker,
) -> GenerateResult:
    """Generate text, moving down the model chain on quota or availability errors.

    Each model gets a single attempt. Errors that are neither rate limits nor
    model-unavailable signals are raised immediately; when the chain runs out
    the last error is raised.
    """
    options = options or ModelOptions()
    last_error: Exception | None = None
    prompt_tokens = estimate_tokens(prompt) + estimate_tokens(options.system_prompt or "")

    for model_key in models_to_try(preferred_model, fallback_models):
        tracker.record(model_key, prompt_tokens)
        try:
            provider = provider_factory(model_key, api_keys)
            text = provider.generate(prompt, options)
        except Exception as exc:
            if is_rate_limit_error(exc):
                logger.warning("ai_fallback_rate_limited model=%s: %s", model_key, exc)
            elif is_model_unavailable_error(exc):
                logger.warning("ai_fallback_model_unavailable model=%s: %s", model_key, exc)
            else:
                raise
            last_error = exc
            continue

        if model_key != (preferred_model or DEFAULT_MODEL):
            logger.info("ai_fallback_used requested=%s served_by=%s", preferred_model or DEFAULT_MODEL, model_key)
        return GenerateResult(text=text, model_key=model_key)

    if last_error is None:
        raise RuntimeError("No models configured for generation")
    raise last_error
