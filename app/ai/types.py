from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ModelOptions:
    temperature: float = 0.3
    max_tokens: int = 4000
    system_prompt: str | None = None
    json_mode: bool = False


@dataclass(frozen=True)
class GenerateResult:
    text: str
    model_key: str


class AIProvider(Protocol):
    def generate(self, prompt: str, options: ModelOptions) -> str: ...


class AIProviderError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        retry_after: float | None = None,
        quota_exceeded: bool = False,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after
        self.quota_exceeded = quota_exceeded
        self.provider = provider


_RATE_LIMIT_STATUSES = {429, 402}
_UNAVAILABLE_STATUSES = {404, 403, 400}
_RATE_LIMIT_MARKERS = ("rate limit", "quota exceeded")
_UNAVAILABLE_MARKERS = ("not found", "decommissioned", "no longer supported")


def _status_of(error: BaseException) -> int | None:
    for attr in ("status", "status_code", "statusCode"):
        value: Any = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    if _status_of(error) in _RATE_LIMIT_STATUSES:
        return True
    if getattr(error, "quota_exceeded", False) is True:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def is_model_unavailable_error(error: BaseException) -> bool:
    if _status_of(error) in _UNAVAILABLE_STATUSES:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _UNAVAILABLE_MARKERS)
