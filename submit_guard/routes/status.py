"""Health check and status endpoints."""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from submit_guard.config import settings
from submit_guard.guard.guard import SubmitGuard
from submit_guard.web.dependencies import get_submit_guard

# Module-level variable to track application start time
_app_start_time = time.time()

router = APIRouter(tags=["Health"])


@router.get("/status")
async def get_status(guard: SubmitGuard = Depends(get_submit_guard)) -> JSONResponse:
    """
    Health check endpoint for monitoring and load balancers.

    Reports how many fingerprints the repeat submit cache currently holds,
    which should stay flat under steady traffic.

    Returns:
        JSONResponse with status, version, uptime_seconds and cache_entries
    """
    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "version": settings.api_version,
            "uptime_seconds": int(time.time() - _app_start_time),
            "cache_entries": len(guard.cache),
        },
    )
