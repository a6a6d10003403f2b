from __future__ import annotations

import os
from dataclasses import dataclass

from app.core.config import settings


@dataclass(frozen=True)
class ModelConfig:
    provider: str
    model_id: str
    name: str
    api_key_env_var: str
    base_url: str | None = None
    description: str = ""

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.model_id}"


_CEREBRAS_URL = "https://api.cerebras.ai/v1"
_DEEPSEEK_URL = "https://api.deepseek.com/v1"
_GROQ_URL = "https://api.groq.com/openai/v1"
_MISTRAL_URL = "https://api.mistral.ai/v1"
_OPENROUTER_URL = "https://openrouter.ai/api/v1"

_MODELS = (
    ModelConfig("gemini", "gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", "GEMINI_API_KEY"),
    ModelConfig("gemini", "gemini-2.5-flash", "Gemini 2.5 Flash", "GEMINI_API_KEY"),
    ModelConfig("openai", "gpt-4o-mini", "GPT-4o Mini", "OPENAI_API_KEY"),
    ModelConfig("openai", "gpt-4o", "GPT-4o", "OPENAI_API_KEY"),
    ModelConfig("anthropic", "claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "ANTHROPIC_API_KEY"),
    ModelConfig("anthropic", "claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "ANTHROPIC_API_KEY"),
    ModelConfig("cerebras", "gpt-oss-120b", "GPT-OSS 120B (Cerebras)", "CEREBRAS_API_KEY", _CEREBRAS_URL),
    ModelConfig("cerebras", "qwen-3-32b", "Qwen 3 32B (Cerebras)", "CEREBRAS_API_KEY", _CEREBRAS_URL),
    ModelConfig("deepseek", "deepseek-chat", "DeepSeek Chat", "DEEPSEEK_API_KEY", _DEEPSEEK_URL),
    ModelConfig("groq", "llama-3.3-70b-versatile", "Llama 3.3 70B (Groq)", "GROQ_API_KEY", _GROQ_URL),
    ModelConfig("mistral", "mistral-small-latest", "Mistral Small", "MISTRAL_API_KEY", _MISTRAL_URL),
    ModelConfig("openrouter", "openai/gpt-4o-mini", "GPT-4o Mini (OpenRouter)", "OPENROUTER_API_KEY", _OPENROUTER_URL),
)

MODEL_CONFIGS: dict[str, ModelConfig] = {model.key: model for model in _MODELS}

DEFAULT_MODEL = settings.default_model_key

FALLBACK_MODELS: tuple[str, ...] = (
    "gemini:gemini-2.5-flash-lite",
    "openai:gpt-4o-mini",
    "anthropic:claude-3-5-haiku-20241022",
    "deepseek:deepseek-chat",
    "groq:llama-3.3-70b-versatile",
)


def parse_model_key(model_key: str) -> tuple[str, str]:
    """Split ``provider:modelId``; model ids may themselves contain colons."""
    provider, _, model_id = model_key.partition(":")
    return provider.strip().lower(), model_id.strip()


def get_model_config(model_key: str) -> ModelConfig | None:
    return MODEL_CONFIGS.get(model_key)


def resolve_api_key(config: ModelConfig, api_keys: dict[str, str] | None = None) -> str | None:
    """Session-supplied keys win over the server environment."""
    supplied = (api_keys or {}).get(config.provider) or (api_keys or {}).get(config.api_key_env_var)
    key = (supplied or os.getenv(config.api_key_env_var) or "").strip()
    return key or None


def available_models(api_keys: dict[str, str] | None = None) -> list[ModelConfig]:
    return [model for model in _MODELS if resolve_api_key(model, api_keys)]
