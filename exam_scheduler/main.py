"""FastAPI application for the exam scheduling service."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exam_scheduler.api.v1.router import api_router
from exam_scheduler.core.config import settings
from exam_scheduler.core.database import engine
from exam_scheduler.core.exceptions import (
    AppException,
    DuplicateExamError,
    GradingConfigError,
    NotFoundError,
    OverlapConflictError,
    ReferenceNotFoundError,
    ValidationError,
)
from exam_scheduler.core.scheduler import start_scheduler, stop_scheduler
from exam_scheduler.middleware.logging import RequestLoggingMiddleware

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Keep library chatter out of the service log
for noisy in ("sqlalchemy", "sqlalchemy.engine", "apscheduler"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# 422 is spelled out: Starlette renamed its constant between releases
ERROR_STATUS_CODES: dict[type[AppException], int] = {
    ValidationError: 422,
    ReferenceNotFoundError: 422,
    GradingConfigError: 422,
    DuplicateExamError: status.HTTP_409_CONFLICT,
    OverlapConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}

DESCRIPTION = """
Exam timetabling and grading configuration.

- Two non-cancelled exams never book a shared batch in overlapping windows
- Total marks follow the itemized marks breakdown when one is given
- Grade bands must not overlap and must cover 0-100%
- Status follows the clock (scheduled, ongoing, completed); cancelled is sticky

Write endpoints require an `X-User-Id` header set by the authentication gateway.
Errors come back as `{"success": false, "error": {"code", "message", "details"}}`.
"""


def status_code_for(exc: AppException) -> int:
    for exc_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": details or {}},
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if settings.STATUS_REFRESH_ENABLED:
        start_scheduler()
    else:
        logger.info("Exam status refresh job disabled")
    yield
    logger.info("Shutting down")
    stop_scheduler()
    engine.dispose()


def create_application() -> FastAPI:
    """Build the app: middleware, error envelope, health check and v1 routes."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=DESCRIPTION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(
            422,
            "VALIDATION_ERROR",
            "Request validation failed",
            {"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An internal server error occurred",
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("exam_scheduler.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
