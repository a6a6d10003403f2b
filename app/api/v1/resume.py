from fastapi import APIRouter, Query, Request

from app.core.request_limiter import enforce_request_limit
from app.core.security import get_authenticated_user, verify_user_id_match
from app.schemas.resume import (
    IDENTIFIER_PATTERN,
    FeedbackRequest,
    FeedbackResponse,
    LinkResumeRequest,
    LinkResumeResponse,
    ResumeListResponse,
    ResumeVersionsResponse,
    RetrieveResumeRequest,
    RetrieveResumeResponse,
    SaveResumeRequest,
    SaveResumeResponse,
)
from app.services.resume_service import (
    link_resumes,
    list_resume_versions,
    list_resumes,
    record_feedback,
    retrieve_resume,
    save_resume,
)

router = APIRouter()


@router.post("/resume/save", response_model=SaveResumeResponse)
async def resume_save(request: Request, payload: SaveResumeRequest):
    enforce_request_limit(request)
    if payload.user_id:
        verify_user_id_match(request, payload.user_id)
    return save_resume(payload)


@router.post("/resume/retrieve", response_model=RetrieveResumeResponse, response_model_exclude_none=True)
async def resume_retrieve(request: Request, payload: RetrieveResumeRequest):
    enforce_request_limit(request)
    user_id = None
    if payload.user_id:
        user_id = verify_user_id_match(request, payload.user_id).id
    return retrieve_resume(payload, authenticated_user_id=user_id)


@router.post("/resume/link", response_model=LinkResumeResponse)
async def resume_link(request: Request, payload: LinkResumeRequest):
    if payload.user_id:
        verify_user_id_match(request, payload.user_id)
    return link_resumes(payload)


@router.get("/resume/list", response_model=ResumeListResponse)
async def resume_list(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId", max_length=200),
    session_id: str | None = Query(default=None, alias="sessionId", max_length=200, pattern=IDENTIFIER_PATTERN),
):
    enforce_request_limit(request)
    if user_id:
        user_id = verify_user_id_match(request, user_id).id
    return list_resumes(user_id=user_id, session_id=session_id)


@router.post("/resume/feedback", response_model=FeedbackResponse)
async def resume_feedback(request: Request, payload: FeedbackRequest):
    user_id = None
    if payload.user_id:
        user_id = verify_user_id_match(request, payload.user_id).id
    elif not payload.session_id:
        user = get_authenticated_user(request)
        user_id = user.id if user else None
    return record_feedback(payload, authenticated_user_id=user_id)


@router.get("/resume/{resume_id}/versions", response_model=ResumeVersionsResponse)
async def resume_versions(request: Request, resume_id: str, user_id: str | None = Query(default=None, alias="userId")):
    user = verify_user_id_match(request, user_id)
    return list_resume_versions(resume_id, user.id)
