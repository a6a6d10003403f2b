from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any

from app.ai.config import DEFAULT_MODEL, available_models
from app.ai.fallback import generate_with_fallback
from app.ai.types import GenerateResult, ModelOptions
from app.ai.usage import estimate_tokens
from app.analytics.db import log_ai_analysis_run
from app.parsing.json_extract import parse_json_result

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def tools_llm_enabled(api_keys: dict[str, str] | None = None) -> bool:
    if not _env_bool("TOOLS_LLM_ENABLED", True):
        return False
    return bool(available_models(api_keys))


def _log_ai_run(
    *,
    run_id: str,
    tool_slug: str,
    model: str,
    schema_valid: bool,
    status: str,
    latency_ms: int | None,
    error_code: str | None = None,
    prompt_tokens: int | None = None,
) -> None:
    try:
        log_ai_analysis_run(
            run_id=run_id,
            tool_slug=tool_slug or "unknown",
            model=model,
            schema_valid=schema_valid,
            status=status,
            error_code=error_code,
            latency_ms=latency_ms,
            prompt_tokens=prompt_tokens,
        )
    except Exception:  # pragma: no cover - analytics must not break AI responses
        logger.debug("ai_run_logging_failed", exc_info=True)


def text_completion(
    prompt: str,
    *,
    tool_slug: str = "unknown",
    options: ModelOptions | None = None,
    preferred_model: str | None = None,
    api_keys: dict[str, str] | None = None,
) -> GenerateResult:
    """Run ``prompt`` through the model fallback chain and record the run.

    Provider errors propagate; callers that can degrade use :func:`json_completion`.
    """
    run_id = uuid.uuid4().hex
    started = time.perf_counter()
    try:
        result = generate_with_fallback(prompt, preferred_model, options, api_keys)
    except Exception as exc:
        _log_ai_run(
            run_id=run_id,
            tool_slug=tool_slug,
            model=preferred_model or DEFAULT_MODEL,
            schema_valid=False,
            status="error",
            error_code=type(exc).__name__,
            latency_ms=int((time.perf_counter() - started) * 1000),
            prompt_tokens=estimate_tokens(prompt),
        )
        raise
    _log_ai_run(
        run_id=run_id,
        tool_slug=tool_slug,
        model=result.model_key,
        schema_valid=True,
        status="success",
        latency_ms=int((time.perf_counter() - started) * 1000),
        prompt_tokens=estimate_tokens(prompt),
    )
    return result


def json_completion(
    prompt: str,
    *,
    system_prompt: str | None = None,
    temperature: float = 0.2,
    max_output_tokens: int = 2000,
    tool_slug: str = "unknown",
    preferred_model: str | None = None,
    api_keys: dict[str, str] | None = None,
) -> dict[str, Any] | None:
    run_id = uuid.uuid4().hex
    if not tools_llm_enabled(api_keys):
        _log_ai_run(
            run_id=run_id,
            tool_slug=tool_slug,
            model=preferred_model or DEFAULT_MODEL,
            schema_valid=False,
            status="skipped",
            error_code="llm_disabled",
            latency_ms=0,
        )
        return None

    started = time.perf_counter()
    options = ModelOptions(
        temperature=temperature,
        max_tokens=max_output_tokens,
        system_prompt=system_prompt,
        json_mode=True,
    )
    try:
        result = generate_with_fallback(prompt, preferred_model, options, api_keys)
    except Exception as exc:  # noqa: BLE001 - deterministic fallback is expected
        logger.warning(
            "tools_llm_json_failed tool=%s model=%s prompt_len=%s: %s",
            tool_slug,
            preferred_model or DEFAULT_MODEL,
            len(prompt),
            exc,
        )
        _log_ai_run(
            run_id=run_id,
            tool_slug=tool_slug,
            model=preferred_model or DEFAULT_MODEL,
            schema_valid=False,
            status="error",
            error_code="llm_exception",
            latency_ms=int((time.perf_counter() - started) * 1000),
            prompt_tokens=estimate_tokens(prompt),
        )
        return None

    parsed = parse_json_result(result.text).value_or(None)
    schema_valid = isinstance(parsed, dict)
    if not schema_valid:
        logger.info("tools_llm_json_unparseable tool=%s model=%s", tool_slug, result.model_key)
    _log_ai_run(
        run_id=run_id,
        tool_slug=tool_slug,
        model=result.model_key,
        schema_valid=schema_valid,
        status="success" if schema_valid else "invalid_schema",
        error_code=None if schema_valid else "invalid_schema",
        latency_ms=int((time.perf_counter() - started) * 1000),
        prompt_tokens=estimate_tokens(prompt),
    )
    return parsed if schema_valid else None
