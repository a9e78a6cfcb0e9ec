"""Repeat submit guard core: key strategies, cache and guard."""

from submit_guard.guard.cache import CacheEntry, DedupCache
from submit_guard.guard.context import RequestContext
from submit_guard.guard.guard import SubmitGuard
from submit_guard.guard.keys import by_parameters, by_token, derive_key
from submit_guard.guard.policy import GuardPolicy, Strategy

__all__ = [
    "CacheEntry",
    "DedupCache",
    "GuardPolicy",
    "RequestContext",
    "Strategy",
    "SubmitGuard",
    "by_parameters",
    "by_token",
    "derive_key",
]
