"""FastAPI application entry point."""

import asyncio
import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from submit_guard.config import settings
from submit_guard.exceptions import SubmitGuardError
from submit_guard.guard.cache import DedupCache
from submit_guard.guard.guard import SubmitGuard
from submit_guard.handlers.exception_handler import (
    generic_exception_handler,
    submit_guard_exception_handler,
    validation_exception_handler,
)
from submit_guard.logging.config import configure_logging, get_logger
from submit_guard.middleware.logging import LoggingMiddleware
from submit_guard.routes import status, submissions

# Configure logging before creating the app
configure_logging()

logger = get_logger(__name__)


async def sweep_periodically(cache: DedupCache, interval: float) -> None:
    """
    Remove expired fingerprints on a timer.

    Shards only purge themselves when they receive traffic, so this keeps
    idle shards from holding expired entries indefinitely.
    """
    while True:
        await asyncio.sleep(interval)
        removed = cache.sweep()
        if removed:
            logger.info(
                "Expired submissions evicted",
                extra={"context": {"removed": removed, "remaining": len(cache)}},
            )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the background sweep for the lifetime of the server."""
    sweeper = asyncio.create_task(
        sweep_periodically(
            app.state.submit_guard.cache, settings.guard_sweep_interval_seconds
        )
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
## Repeat Submit Guard

Rejects a request when an identical one was accepted within a short window.

### Strategies

- **param**: same operation + same arguments (path, query and body)
- **token**: same `Authorization` header + same path, payload ignored

Rejected requests receive `429 DUPLICATE_SUBMISSION` with a `Retry-After`
header. Deduplication state is per process.
""",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# One cache per process, shared by every protected route
app.state.submit_guard = SubmitGuard(DedupCache())

app.add_middleware(LoggingMiddleware)

app.add_exception_handler(SubmitGuardError, submit_guard_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(submissions.router)
app.include_router(status.router)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """
    Root endpoint with API information.

    Returns:
        Dict with welcome message and docs link
    """
    return {
        "message": f"Welcome to {settings.api_title}",
        "version": settings.api_version,
        "docs": "/docs",
        "health": "/status",
    }
