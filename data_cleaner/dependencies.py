"""Common FastAPI dependencies used by the routers."""
from __future__ import annotations

from fastapi import Request

from .services.cleanup_engine import CleanupEngine
from .services.dispatcher import CleanupDispatcher


def get_cleanup_engine(request: Request) -> CleanupEngine:
    """Engine for synchronous runs, built once in `create_app`."""
    return request.app.state.cleanup_engine


def get_dispatcher(request: Request) -> CleanupDispatcher:
    return request.app.state.dispatcher
