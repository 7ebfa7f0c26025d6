"""API routers for the orchestration server."""

from mastery.api.routers import judge_router, orchestration_router

__all__ = ["judge_router", "orchestration_router"]
