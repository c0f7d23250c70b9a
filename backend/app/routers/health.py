"""Health endpoints that do not require authentication."""

from __future__ import annotations

from fastapi import APIRouter

from ..services import JobMonitor

router = APIRouter(tags=["health"])


@router.get("/health/jobs")
def background_jobs() -> dict[str, object]:
    """Return the status of every background job started by the process."""

    return {"jobs": JobMonitor.snapshot()}
