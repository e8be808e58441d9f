"""API routes."""

from absence_engine.api.routes.health import router as health_router
from absence_engine.api.routes.milestones import router as milestones_router
from absence_engine.api.routes.sickness_cases import router as sickness_cases_router
from absence_engine.api.routes.triggers import router as triggers_router

__all__ = ["health_router", "milestones_router", "sickness_cases_router", "triggers_router"]
