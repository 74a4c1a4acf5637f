"""API v1 router aggregation."""
from fastapi import APIRouter

from qctool.api.v1.endpoints import quality_control

api_router = APIRouter()

api_router.include_router(
    quality_control.router,
    prefix="/quality-control",
    tags=["quality-control"],
)
