"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from exam_scheduler.api.v1.endpoints import exams

api_router = APIRouter()

# Exams
api_router.include_router(
    exams.router,
    prefix="/exams",
    tags=["Exams"],
)
