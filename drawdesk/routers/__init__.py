"""API routers for the drawdesk backend."""
from fastapi import APIRouter

from . import draws, health, invoices, projects


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(draws.router)
    api_router.include_router(invoices.router)
    api_router.include_router(projects.router)
    return api_router
