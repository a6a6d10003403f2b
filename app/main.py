import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
import sentry_sdk

from app.api.v1.health import router as health_router
from app.api.v1.tools import router as tools_router
from app.api.v1.tailor import router as tailor_router
from app.api.v1.resume import router as resume_router
from app.api.v1.billing import router as billing_router
from app.api.v1.analytics import router as analytics_router
from app.core.cors import cors_allow_origin_regex, cors_allowed_origins
from app.core.errors import ApiError, api_error_handler, validation_error_handler
from app.core.rate_limit import limiter
from app.core.config import settings
from dotenv import load_dotenv
from app.core.lifespan import lifespan

load_dotenv()
logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Resume Tailor API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins(),
    allow_origin_regex=cors_allow_origin_regex(),
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(tools_router, prefix="/v1", tags=["Tools"])
app.include_router(tailor_router, prefix="/v1", tags=["Tailor"])
app.include_router(resume_router, prefix="/v1", tags=["Resume"])
app.include_router(billing_router, prefix="/v1", tags=["Billing"])
app.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
