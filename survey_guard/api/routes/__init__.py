from __future__ import annotations

from survey_guard.api.routes.auth import router as auth_router
from survey_guard.api.routes.health import router as health_router
from survey_guard.api.routes.submit import router as submit_router

__all__ = ["auth_router", "health_router", "submit_router"]
