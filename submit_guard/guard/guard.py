"""Repeat submit guard: decides whether a protected operation may run."""

import functools
import inspect
import math
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from submit_guard.exceptions import DuplicateSubmissionError
from submit_guard.guard.cache import DedupCache
from submit_guard.guard.context import RequestContext
from submit_guard.guard.keys import derive_key, ensure_supported
from submit_guard.guard.policy import GuardPolicy
from submit_guard.logging.config import get_logger
from submit_guard.utils.clock import Clock

logger = get_logger(__name__)

T = TypeVar("T")

# Bound arguments that identify the receiver rather than the request
_RECEIVER_NAMES = ("self", "cls")


class SubmitGuard:
    """
    Accept/reject gate in front of protected operations.

    The guard holds no per-request state; every decision goes through the
    injected DedupCache. Once a request is accepted the entry stays even if
    the handler fails or is cancelled, so a retry inside the window is
    still rejected.
    """

    def __init__(self, cache: DedupCache, clock: Clock | None = None) -> None:
        """
        Initialize the guard.

        Args:
            cache: Shared cache, one per process
            clock: Time source (default: the cache's clock)
        """
        self.cache = cache
        self.clock = clock or cache.clock

    def check(self, context: RequestContext, policy: GuardPolicy) -> str:
        """
        Record the request or reject it as a duplicate.

        Args:
            context: Identity of the incoming request
            policy: Policy attached to the operation

        Returns:
            The cache key under which the request was accepted

        Raises:
            ConfigurationError: If the policy's strategy is not recognized
            DuplicateSubmissionError: If the same request was accepted
                within the policy window
        """
        strategy = ensure_supported(policy.strategy)
        key = derive_key(strategy, context)
        now = self.clock.now()

        if self.cache.try_accept(key, now, policy.window_seconds):
            return key

        retry_after = max(1, math.ceil(self.cache.remaining(key, now)))
        logger.info(
            "Duplicate submission rejected",
            extra={
                "context": {
                    "strategy": strategy.value,
                    "operation_id": context.operation_id,
                    "resource_path": context.resource_path,
                    "retry_after": retry_after,
                }
            },
        )
        raise DuplicateSubmissionError(
            retry_after=retry_after,
            details={
                "operation_id": context.operation_id,
                "resource_path": context.resource_path,
            },
        )

    def protect(
        self,
        context: RequestContext,
        policy: GuardPolicy,
        handler: Callable[[RequestContext], T],
    ) -> T:
        """
        Run `handler` only if the request is not a duplicate.

        The handler's return value and exceptions are passed through as-is.

        Raises:
            DuplicateSubmissionError: If rejected; the handler is not called
        """
        self.check(context, policy)
        return handler(context)

    async def protect_async(
        self,
        context: RequestContext,
        policy: GuardPolicy,
        handler: Callable[[RequestContext], Awaitable[T]],
    ) -> T:
        """Async counterpart of `protect()` for coroutine handlers."""
        self.check(context, policy)
        return await handler(context)

    def guarded(
        self,
        policy: GuardPolicy,
        *,
        resource_path: str | None = None,
        token_provider: Callable[[], str | None] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """
        Decorate a plain function or coroutine function with the guard.

        The operation id is the function's module and qualified name. Call
        arguments are bound to the signature (defaults applied) so positional
        and keyword spellings of the same call share one fingerprint.

        Args:
            policy: Policy for the decorated operation
            resource_path: Path used by the token strategy
                (default: the operation id)
            token_provider: Returns the current caller's token, if any

        Raises:
            ConfigurationError: At decoration time, for an unknown strategy
        """
        ensure_supported(policy.strategy)

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            signature = inspect.signature(func)
            operation_id = f"{func.__module__}.{func.__qualname__}"
            path = resource_path or operation_id

            def build_context(args: tuple, kwargs: dict) -> RequestContext:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                values = [
                    value
                    for index, (name, value) in enumerate(bound.arguments.items())
                    if not (index == 0 and name in _RECEIVER_NAMES)
                ]
                return RequestContext(
                    operation_id=operation_id,
                    parameters=tuple(values),
                    auth_token=token_provider() if token_provider else None,
                    resource_path=path,
                )

            if inspect.iscoroutinefunction(func):

                @functools.wraps(func)
                async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                    return await self.protect_async(
                        build_context(args, kwargs),
                        policy,
                        lambda _context: func(*args, **kwargs),
                    )

                return async_wrapper

            @functools.wraps(func)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                return self.protect(
                    build_context(args, kwargs),
                    policy,
                    lambda _context: func(*args, **kwargs),
                )

            return wrapper

        return decorator
