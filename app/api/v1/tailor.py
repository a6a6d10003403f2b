import asyncio
import json
import logging
import threading
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from app.core.errors import ApiError, unauthorized
from app.core.rate_limit import rate_limit
from app.core.request_limiter import enforce_request_limit
from app.core.security import verify_user_id_match
from app.schemas.tailor import (
    DiffRequest,
    DiffResponse,
    JobTitleRequest,
    JobTitleResponse,
    TailorRequest,
    TailorResponse,
    sse_payload,
)
from app.services.tailor_service import (
    TailoringCancelled,
    build_diff,
    extract_job_title,
    run_tailoring,
    stream_error_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SIGN_IN_MESSAGE = "Sign in to tailor your resume. Your first 3 are free."


def _sse_event(event: str, payload: dict[str, Any]) -> str:
    data = json.dumps(payload, ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n"


def _authorize_tailoring(request: Request, payload: TailorRequest) -> None:
    if not payload.user_id:
        raise unauthorized(SIGN_IN_MESSAGE)
    verify_user_id_match(request, payload.user_id)
    enforce_request_limit(request, "/v1/tailor", model=payload.model_key)


@router.post("/tailor", response_model=TailorResponse)
@rate_limit()
async def tailor_resume(request: Request, payload: TailorRequest):
    _authorize_tailoring(request, payload)
    return await asyncio.to_thread(run_tailoring, payload)


@router.post("/tailor/stream")
@rate_limit()
async def tailor_resume_stream(request: Request, payload: TailorRequest):
    _authorize_tailoring(request, payload)

    async def event_stream():
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        stop = threading.Event()

        def push(event: str, data: dict[str, Any]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, {"kind": event, "payload": data})

        def worker() -> None:
            try:
                result = run_tailoring(payload, progress_callback=push, should_stop=stop.is_set)
                push("complete", {**sse_payload(result), "progress": 100})
            except TailoringCancelled as exc:
                logger.info("tailor_stream_cancelled user=%s stage=%s", payload.user_id, exc.stage)
            except Exception as exc:
                if not isinstance(exc, ApiError):
                    logger.exception("tailor_stream_failed model=%s", payload.model_key)
                push("error", stream_error_payload(exc))
            finally:
                push("done", {})

        task = asyncio.create_task(asyncio.to_thread(worker))

        try:
            while True:
                if await request.is_disconnected():
                    break
                event = await queue.get()
                kind = event.get("kind")
                if kind == "done":
                    break
                yield _sse_event(kind, event.get("payload", {}))
        finally:
            # Cancelling the task does not interrupt the thread; the flag stops
            # the pipeline at its next checkpoint.
            stop.set()
            if not task.done():
                task.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/tailor/diff", response_model=DiffResponse)
async def tailor_diff(request: Request, payload: DiffRequest):
    enforce_request_limit(request)
    return build_diff(payload)


@router.post("/tailor/job-title", response_model=JobTitleResponse)
async def tailor_job_title(request: Request, payload: JobTitleRequest):
    enforce_request_limit(request)
    return extract_job_title(payload)
