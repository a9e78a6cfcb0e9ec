"""Tests for the repeat submit guard."""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from submit_guard.exceptions import ConfigurationError, DuplicateSubmissionError
from submit_guard.guard.cache import DedupCache
from submit_guard.guard.context import RequestContext
from submit_guard.guard.guard import SubmitGuard
from submit_guard.guard.policy import GuardPolicy, Strategy
from submit_guard.utils.clock import ManualClock


class BusinessError(Exception):
    """Failure raised by a protected handler."""


@pytest.fixture
def clock() -> ManualClock:
    """Create a clock starting at t=0."""
    return ManualClock()


@pytest.fixture
def guard(clock: ManualClock) -> SubmitGuard:
    """Create a guard over a fresh cache."""
    return SubmitGuard(DedupCache(default_window=5.0, clock=clock))


@pytest.fixture
def param_policy() -> GuardPolicy:
    """Parameter strategy with a 5 second window."""
    return GuardPolicy(strategy=Strategy.BY_PARAMETERS, window_seconds=5)


@pytest.fixture
def token_policy() -> GuardPolicy:
    """Token strategy with a 5 second window."""
    return GuardPolicy(strategy=Strategy.BY_TOKEN, window_seconds=5)


def _context(*parameters, token: str | None = "abc", path: str = "/submit"):
    return RequestContext(
        operation_id="accounts.AccountController.save_count_info",
        parameters=parameters,
        auth_token=token,
        resource_path=path,
    )


def test_accept_reject_accept_over_window(
    guard: SubmitGuard, clock: ManualClock, param_policy: GuardPolicy
):
    """Test the handler runs at t=0, is blocked at t=3 and runs again at t=6."""
    calls = []

    def handler(context: RequestContext) -> str:
        calls.append(clock.now())
        return "test OK"

    assert guard.protect(_context("acct123"), param_policy, handler) == "test OK"

    clock.set(3.0)
    with pytest.raises(DuplicateSubmissionError):
        guard.protect(_context("acct123"), param_policy, handler)

    clock.set(6.0)
    assert guard.protect(_context("acct123"), param_policy, handler) == "test OK"

    assert calls == [0.0, 6.0]


def test_token_strategy_ignores_parameters(
    guard: SubmitGuard, clock: ManualClock, token_policy: GuardPolicy
):
    """Test a different payload from the same session and path is rejected."""
    guard.protect(_context("acct123"), token_policy, lambda context: "ok")

    clock.set(1.0)
    with pytest.raises(DuplicateSubmissionError):
        guard.protect(_context("acct999", 42), token_policy, lambda context: "ok")


def test_token_strategy_separates_sessions_and_paths(
    guard: SubmitGuard, token_policy: GuardPolicy
):
    """Test other sessions and other paths are not affected."""
    guard.protect(_context(token="abc"), token_policy, lambda context: "ok")

    assert guard.protect(_context(token="xyz"), token_policy, lambda c: "ok") == "ok"
    assert (
        guard.protect(_context(token="abc", path="/other"), token_policy, lambda c: "ok")
        == "ok"
    )
    assert guard.protect(_context(token=None), token_policy, lambda c: "ok") == "ok"


def test_param_strategy_allows_different_arguments(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test different arguments are different requests."""
    guard.protect(_context("acct123"), param_policy, lambda context: "ok")

    assert guard.protect(_context("acct124"), param_policy, lambda c: "ok") == "ok"


def test_duplicate_error_details(
    guard: SubmitGuard, clock: ManualClock, param_policy: GuardPolicy
):
    """Test the rejection carries retry_after and identifies the operation."""
    guard.check(_context("acct123"), param_policy)
    clock.set(1.5)

    with pytest.raises(DuplicateSubmissionError) as exc_info:
        guard.check(_context("acct123"), param_policy)

    error = exc_info.value
    assert error.status_code == 429
    assert error.error_code == "DUPLICATE_SUBMISSION"
    assert error.retry_after == 4
    assert error.details["retry_after"] == 4
    assert error.details["operation_id"] == "accounts.AccountController.save_count_info"
    assert error.details["resource_path"] == "/submit"


def test_duplicate_is_distinguishable_from_business_errors(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test handler failures are propagated unchanged and are not guard errors."""
    original = BusinessError("insufficient funds")

    def handler(context: RequestContext) -> None:
        raise original

    with pytest.raises(BusinessError) as exc_info:
        guard.protect(_context("acct123"), param_policy, handler)

    assert exc_info.value is original
    assert not isinstance(exc_info.value, DuplicateSubmissionError)


def test_failed_handler_keeps_entry(guard: SubmitGuard, param_policy: GuardPolicy):
    """Test a retry after a failed but accepted attempt is still rejected."""

    def handler(context: RequestContext) -> None:
        raise BusinessError("timeout talking to ledger")

    with pytest.raises(BusinessError):
        guard.protect(_context("acct123"), param_policy, handler)

    with pytest.raises(DuplicateSubmissionError):
        guard.protect(_context("acct123"), param_policy, handler)


def test_rejection_does_not_invoke_handler(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test the handler never sees a rejected request."""
    calls = []
    guard.protect(_context("acct123"), param_policy, calls.append)

    with pytest.raises(DuplicateSubmissionError):
        guard.protect(_context("acct123"), param_policy, calls.append)

    assert len(calls) == 1


def test_handler_receives_context(guard: SubmitGuard, param_policy: GuardPolicy):
    """Test the handler is called with the request context."""
    context = _context("acct123")

    assert guard.protect(context, param_policy, lambda c: c) is context


def test_unknown_strategy_is_rejected_before_cache(guard: SubmitGuard):
    """Test an unvalidated policy with a bad strategy never reaches the cache."""
    policy = GuardPolicy.model_construct(strategy="ip", window_seconds=5.0)

    with pytest.raises(ConfigurationError):
        guard.check(_context("acct123"), policy)

    assert len(guard.cache) == 0


def test_rejection_is_logged_without_token(
    guard: SubmitGuard, token_policy: GuardPolicy
):
    """Test rejections are logged with operation details but no credential."""
    guard.check(_context(token="secret-token"), token_policy)

    with patch("submit_guard.guard.guard.logger") as mock_logger:
        with pytest.raises(DuplicateSubmissionError):
            guard.check(_context(token="secret-token"), token_policy)

    mock_logger.info.assert_called_once()
    call = mock_logger.info.call_args
    assert "Duplicate submission rejected" in call[0]
    context = call[1]["extra"]["context"]
    assert context["strategy"] == "token"
    assert "secret-token" not in str(context)


def test_concurrent_identical_requests_run_handler_once():
    """Test 100 concurrent identical requests increment the counter once."""
    guard = SubmitGuard(DedupCache(default_window=5.0))
    policy = GuardPolicy(strategy=Strategy.BY_PARAMETERS, window_seconds=5)
    counter = {"value": 0}
    counter_lock = threading.Lock()
    barrier = threading.Barrier(100)

    def handler(context: RequestContext) -> int:
        with counter_lock:
            counter["value"] += 1
            return counter["value"]

    def submit(_: int) -> str:
        barrier.wait()
        try:
            guard.protect(_context("acct123"), policy, handler)
            return "accepted"
        except DuplicateSubmissionError:
            return "rejected"

    with ThreadPoolExecutor(max_workers=100) as pool:
        outcomes = list(pool.map(submit, range(100)))

    assert counter["value"] == 1
    assert outcomes.count("accepted") == 1
    assert outcomes.count("rejected") == 99


@pytest.mark.asyncio
async def test_protect_async(guard: SubmitGuard, param_policy: GuardPolicy):
    """Test coroutine handlers are awaited and guarded the same way."""

    async def handler(context: RequestContext) -> str:
        await asyncio.sleep(0)
        return "done"

    assert await guard.protect_async(_context("acct123"), param_policy, handler) == "done"

    with pytest.raises(DuplicateSubmissionError):
        await guard.protect_async(_context("acct123"), param_policy, handler)


@pytest.mark.asyncio
async def test_cancelled_async_handler_keeps_entry(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test a retry after cancelling an accepted coroutine is still rejected."""
    started = asyncio.Event()

    async def handler(context: RequestContext) -> str:
        started.set()
        await asyncio.Event().wait()
        return "done"

    task = asyncio.create_task(
        guard.protect_async(_context("acct123"), param_policy, handler)
    )
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(guard.cache) == 1
    with pytest.raises(DuplicateSubmissionError):
        await guard.protect_async(_context("acct123"), param_policy, handler)


def test_guarded_decorator_binds_arguments(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test positional and keyword spellings of one call share a fingerprint."""
    calls = []

    @guard.guarded(param_policy)
    def save_count_info(account_no: str, amount: int = 1) -> str:
        calls.append((account_no, amount))
        return "test OK"

    assert save_count_info("acct123") == "test OK"

    with pytest.raises(DuplicateSubmissionError):
        save_count_info(account_no="acct123", amount=1)

    assert save_count_info("acct123", 2) == "test OK"
    assert calls == [("acct123", 1), ("acct123", 2)]
    assert save_count_info.__name__ == "save_count_info"


def test_guarded_decorator_skips_receiver(guard: SubmitGuard, param_policy: GuardPolicy):
    """Test two instances calling the same method with the same args collide."""

    class AccountService:
        def __init__(self, name: str) -> None:
            self.name = name

        @guard.guarded(param_policy)
        def transfer(self, account_no: str) -> str:
            return self.name

    assert AccountService("a").transfer("acct123") == "a"
    with pytest.raises(DuplicateSubmissionError):
        AccountService("b").transfer("acct123")


def test_guarded_decorator_with_token_provider(
    guard: SubmitGuard, token_policy: GuardPolicy
):
    """Test the token strategy uses the provided session token."""
    current = {"token": "abc"}

    @guard.guarded(
        token_policy, resource_path="/saveCountInfo", token_provider=lambda: current["token"]
    )
    def save_count_info(account_no: str) -> str:
        return "test OK"

    save_count_info("acct123")
    with pytest.raises(DuplicateSubmissionError):
        save_count_info("acct999")

    current["token"] = "xyz"
    assert save_count_info("acct123") == "test OK"


@pytest.mark.asyncio
async def test_guarded_decorator_on_coroutine(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test coroutine functions stay awaitable when decorated."""

    @guard.guarded(param_policy)
    async def submit_order(order_id: str) -> str:
        return order_id

    assert await submit_order("o-1") == "o-1"
    with pytest.raises(DuplicateSubmissionError):
        await submit_order("o-1")


@pytest.mark.asyncio
async def test_cancelled_guarded_coroutine_keeps_entry(
    guard: SubmitGuard, param_policy: GuardPolicy
):
    """Test cancelling a decorated coroutine after acceptance keeps its entry."""
    started = asyncio.Event()
    calls = []

    @guard.guarded(param_policy)
    async def submit_order(order_id: str) -> str:
        calls.append(order_id)
        started.set()
        await asyncio.Event().wait()
        return order_id

    task = asyncio.create_task(submit_order("o-1"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    with pytest.raises(DuplicateSubmissionError):
        await submit_order("o-1")
    assert calls == ["o-1"]
    assert len(guard.cache) == 1


def test_guarded_decorator_validates_strategy_eagerly(guard: SubmitGuard):
    """Test a bad strategy fails when the decorator is applied."""
    policy = GuardPolicy.model_construct(strategy="ip", window_seconds=5.0)

    with pytest.raises(ConfigurationError):
        guard.guarded(policy)
