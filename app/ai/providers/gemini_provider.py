from __future__ import annotations

import os
from typing import Optional

from google import genai
from google.genai import errors, types

from app.ai.types import AIProviderError, ModelOptions


class GeminiProvider:
    def __init__(self, model: str, api_key: Optional[str] = None):
        self._model = model
        key = (api_key or os.getenv("GEMINI_API_KEY") or "").strip()
        if not key:
            raise AIProviderError("GEMINI_API_KEY is missing", status=403, provider="gemini")
        self._client = genai.Client(api_key=key)

    def generate(self, prompt: str, options: ModelOptions) -> str:
        config = types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            system_instruction=options.system_prompt,
            response_mime_type="application/json" if options.json_mode else None,
        )
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
        except errors.APIError as exc:
            status = exc.code if isinstance(exc.code, int) else None
            raise AIProviderError(
                str(exc),
                status=status,
                quota_exceeded="RESOURCE_EXHAUSTED" in str(exc.status or ""),
                provider="gemini",
            ) from exc
        return response.text or ""
