import logging
from typing import Callable, TypeVar

from fastapi import APIRouter, Request

from app.core.errors import ApiError, server_error
from app.core.rate_limit import rate_limit
from app.core.request_limiter import enforce_request_limit
from app.schemas.tools import (
    AtsSimulatorRequest,
    AtsSimulatorResponse,
    InterviewPrepRequest,
    InterviewPrepResponse,
    KeywordAnalyzerRequest,
    KeywordAnalyzerResponse,
    RelevancyRequest,
    RelevancyResponse,
    ResumeValidationRequest,
    ResumeValidationResponse,
    SkillsGapRequest,
    SkillsGapResponse,
)
from app.services.tools_service import (
    run_ats_simulator,
    run_interview_prep,
    run_keyword_analyzer,
    run_relevancy,
    run_resume_validation,
    run_skills_gap,
)

logger = logging.getLogger(__name__)

router = APIRouter()

P = TypeVar("P")
R = TypeVar("R")


def _run_tool(request: Request, tool: Callable[[P], R], payload: P, failure_message: str) -> R:
    enforce_request_limit(request)
    try:
        return tool(payload)
    except ApiError:
        raise
    except Exception as exc:
        logger.exception("tool_failed path=%s", request.url.path)
        raise server_error(failure_message, str(exc)) from exc


@router.post("/tools/keyword-analyzer", response_model=KeywordAnalyzerResponse)
@rate_limit()
async def tools_keyword_analyzer(request: Request, payload: KeywordAnalyzerRequest):
    return _run_tool(request, run_keyword_analyzer, payload, "Failed to analyze keywords")


@router.post("/tools/skills-gap", response_model=SkillsGapResponse)
@rate_limit()
async def tools_skills_gap(request: Request, payload: SkillsGapRequest):
    return _run_tool(request, run_skills_gap, payload, "Failed to analyze skills gap")


@router.post("/tools/ats-simulator", response_model=AtsSimulatorResponse)
@rate_limit()
async def tools_ats_simulator(request: Request, payload: AtsSimulatorRequest):
    return _run_tool(request, run_ats_simulator, payload, "Failed to simulate ATS parsing")


@router.post("/tools/interview-prep", response_model=InterviewPrepResponse)
@rate_limit()
async def tools_interview_prep(request: Request, payload: InterviewPrepRequest):
    return _run_tool(request, run_interview_prep, payload, "Failed to generate interview questions")


@router.post("/tools/relevancy", response_model=RelevancyResponse)
@rate_limit()
async def tools_relevancy(request: Request, payload: RelevancyRequest):
    return _run_tool(request, run_relevancy, payload, "Failed to score resume relevancy")


@router.post("/tools/validate-resume", response_model=ResumeValidationResponse)
@rate_limit()
async def tools_validate_resume(request: Request, payload: ResumeValidationRequest):
    return _run_tool(request, run_resume_validation, payload, "Failed to validate resume")
