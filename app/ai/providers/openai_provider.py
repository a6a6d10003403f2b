from __future__ import annotations

from typing import Optional

from openai import APIStatusError, OpenAI

from app.ai.types import AIProviderError, ModelOptions


def _retry_after(exc: APIStatusError) -> float | None:
    raw = exc.response.headers.get("retry-after") if exc.response is not None else None
    try:
        return float(raw) if raw else None
    except ValueError:
        return None


class OpenAIProvider:
    """Chat-completions client for OpenAI and the OpenAI-compatible hosts."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider: str = "openai",
        timeout_s: float = 60.0,
        max_retries: int = 0,
    ):
        self._model = model
        self._provider = provider
        key = (api_key or "").strip()
        if not key:
            raise AIProviderError(f"{provider} API key is missing", status=403, provider=provider)

        self._client = OpenAI(
            api_key=key,
            base_url=base_url,
            timeout=timeout_s,
            max_retries=max_retries,
        )

    def generate(self, prompt: str, options: ModelOptions) -> str:
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        create_kwargs = {
            "model": self._model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.json_mode:
            create_kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(**create_kwargs)
        except APIStatusError as exc:
            body = exc.body if isinstance(exc.body, dict) else {}
            error_body = body.get("error") if isinstance(body.get("error"), dict) else body
            raise AIProviderError(
                str(exc),
                status=exc.status_code,
                retry_after=_retry_after(exc),
                quota_exceeded=(error_body or {}).get("code") == "insufficient_quota",
                provider=self._provider,
            ) from exc

        content = response.choices[0].message.content if response.choices else ""
        return str(content or "")
