# lifemate/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lifemate.api.v1.auth import router as auth_router
from lifemate.api.v1.jobseekers import router as jobseeker_router
from lifemate.api.v1.oauth import router as oauth_router
from lifemate.api.v1.resumes import router as resumes_router
from lifemate.core.config import settings
from lifemate.core.errors import AppError, InternalError, RateLimitedError, ValidationFailedError
from lifemate.db.mongo import close_db, init_db

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("%s API started (%s)", settings.APP_NAME, settings.APP_ENV)
    yield
    close_db()


app = FastAPI(title="LifeMate API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def _field_errors(exc: RequestValidationError):
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        cause = (err.get("ctx") or {}).get("error")
        out.append({"field": ".".join(loc) or "body", "message": str(cause) if cause else err.get("msg", "")})
    return out


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = _field_errors(exc)
    failure = ValidationFailedError(errors[0]["message"] if len(errors) == 1 else None, errors=errors)
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    failure = InternalError()
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())


app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(oauth_router, prefix="/api/auth", tags=["oauth"])
app.include_router(oauth_router, prefix="/api/oauth", tags=["oauth"])
app.include_router(jobseeker_router, prefix="/api/jobseeker", tags=["jobseeker"])
app.include_router(resumes_router, prefix="/api/resumes", tags=["resumes"])


@app.get("/health")
async def health():
    return {"success": True, "message": "OK", "data": {"service": settings.APP_NAME, "env": settings.APP_ENV}}
