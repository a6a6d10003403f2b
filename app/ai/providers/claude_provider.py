from __future__ import annotations

import os
from typing import Optional

from anthropic import Anthropic, APIStatusError

from app.ai.types import AIProviderError, ModelOptions


class ClaudeProvider:
    def __init__(self, model: str, api_key: Optional[str] = None, timeout_s: float = 60.0):
        self._model = model
        key = (api_key or os.getenv("ANTHROPIC_API_KEY") or "").strip()
        if not key:
            raise AIProviderError("ANTHROPIC_API_KEY is missing", status=403, provider="anthropic")
        self._client = Anthropic(api_key=key, timeout=timeout_s, max_retries=0)

    def generate(self, prompt: str, options: ModelOptions) -> str:
        create_kwargs = {
            "model": self._model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.system_prompt:
            create_kwargs["system"] = options.system_prompt

        try:
            message = self._client.messages.create(**create_kwargs)
        except APIStatusError as exc:
            raise AIProviderError(str(exc), status=exc.status_code, provider="anthropic") from exc

        return "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
