"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import notifications, sessions

api_router = APIRouter()

api_router.include_router(
    sessions.router,
    prefix="/sessions",
    tags=["sessions"]
)

api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"]
)
