"""API Routes module"""
from fastapi import APIRouter

from .workflows import router as workflows_router
from .targets import router as targets_router
from .sweep import router as sweep_router

# Main API router
api_router = APIRouter()

api_router.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(targets_router, prefix="/targets", tags=["Targets"])
api_router.include_router(sweep_router, prefix="/sweep", tags=["Sweep"])

__all__ = ["api_router"]
