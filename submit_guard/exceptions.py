"""Custom exception classes for the repeat submit guard."""

from typing import Any


class SubmitGuardError(Exception):
    """Base exception for the repeat submit guard."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code suggested to the web layer
            error_code: Machine-readable error code
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(SubmitGuardError):
    """
    Raised when a guard policy is invalid.

    Detected while wiring a policy to an operation, never per request.
    """

    def __init__(
        self,
        message: str = "Invalid repeat submit configuration",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize ConfigurationError.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            details=details,
        )


class DuplicateSubmissionError(SubmitGuardError):
    """Raised when an identical request was accepted within the window (429)."""

    def __init__(
        self,
        message: str = "Duplicate submission, please do not submit again",
        retry_after: int = 1,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize DuplicateSubmissionError.

        Args:
            message: Error message
            retry_after: Seconds until the same request is accepted again
            details: Additional error details
        """
        error_details = details or {}
        error_details["retry_after"] = retry_after
        super().__init__(
            message=message,
            status_code=429,
            error_code="DUPLICATE_SUBMISSION",
            details=error_details,
        )
        self.retry_after = retry_after
