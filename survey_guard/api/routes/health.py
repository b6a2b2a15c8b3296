from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from survey_guard.adapters.store.factory import local_store_of
from survey_guard.api.dependencies import get_guard
from survey_guard.core.config import settings
from survey_guard.core.guard import Guard

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/store")
def store_diagnostics(guard: Guard = Depends(get_guard)) -> dict:
    """Report which stores back the guard and whether the primary answers.

    Only served outside production; production answers 404.
    """

    if settings.is_production:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    primary_reachable = None
    if guard.primary_configured:
        primary_reachable = guard.stores["verification"].ping()

    fallback_entries = {}
    for name, store in guard.stores.items():
        local = local_store_of(store)
        if local is not None:
            fallback_entries[name] = len(local)

    return {
        "primary_configured": guard.primary_configured,
        "primary_reachable": primary_reachable,
        "rate_limiter": type(guard.rate_limiter).__name__,
        "stores": {name: store.backend_name for name, store in guard.stores.items()},
        "fallback_entries": fallback_entries,
    }
