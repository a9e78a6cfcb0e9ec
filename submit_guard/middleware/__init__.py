"""Middleware components for request processing."""

from submit_guard.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
