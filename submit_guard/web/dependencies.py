"""FastAPI dependencies that attach the repeat submit guard to routes."""

import json
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends, Request

from submit_guard.config import settings
from submit_guard.exceptions import DuplicateSubmissionError
from submit_guard.guard.context import RequestContext
from submit_guard.guard.guard import SubmitGuard
from submit_guard.guard.keys import ensure_supported
from submit_guard.guard.policy import GuardPolicy


def get_submit_guard(request: Request) -> SubmitGuard:
    """Return the process-wide guard stored on the application."""
    return request.app.state.submit_guard


def _operation_id(request: Request) -> str:
    endpoint = request.scope.get("endpoint")
    if endpoint is not None:
        return f"{endpoint.__module__}.{endpoint.__qualname__}"

    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    return f"{request.method} {path}"


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None

    content_type = request.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return json.loads(raw)
        except ValueError:
            pass
    return raw


async def build_request_context(request: Request) -> RequestContext:
    """
    Describe a live request for the guard.

    Parameters are, in order: path parameters, query parameters (in the
    order sent, repeats kept) and the body (decoded JSON when possible,
    raw bytes otherwise).

    Decoded JSON keeps the int/float split of the wire text, so `10` and
    `10.0` in a body are different submissions.

    Args:
        request: The incoming request

    Returns:
        RequestContext for key derivation
    """
    return RequestContext(
        operation_id=_operation_id(request),
        parameters=(
            dict(request.path_params),
            request.query_params.multi_items(),
            await _read_body(request),
        ),
        auth_token=request.headers.get(settings.guard_token_header),
        resource_path=request.url.path,
    )


def repeat_submit(
    policy: GuardPolicy | None = None,
    *,
    strategy: str | None = None,
    window_seconds: float | None = None,
) -> Callable[..., Awaitable[str]]:
    """
    Build a dependency that rejects repeated submissions to a route.

    Usage:
        @router.post("/orders", dependencies=[Depends(repeat_submit(strategy="token"))])

    The policy is validated here, when the route module is imported, so a
    misconfigured route fails at startup.

    Args:
        policy: Complete policy; overrides `strategy` and `window_seconds`
        strategy: "param" or "token" (default: GUARD_DEFAULT_STRATEGY)
        window_seconds: Suppression window (default: GUARD_DEFAULT_WINDOW_SECONDS)

    Returns:
        Async dependency returning the accepted cache key

    Raises:
        ConfigurationError: If the policy is invalid
    """
    if policy is None:
        overrides: dict[str, Any] = {}
        if strategy is not None:
            overrides["strategy"] = strategy
        if window_seconds is not None:
            overrides["window_seconds"] = window_seconds
        policy = GuardPolicy(**overrides)
    ensure_supported(policy.strategy)

    async def dependency(
        request: Request, guard: SubmitGuard = Depends(get_submit_guard)
    ) -> str:
        context = await build_request_context(request)
        try:
            key = guard.check(context, policy)
        except DuplicateSubmissionError:
            request.state.guard_decision = "rejected"
            raise
        request.state.guard_decision = "accepted"
        return key

    dependency.policy = policy  # type: ignore[attr-defined]
    return dependency
