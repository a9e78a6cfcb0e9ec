"""Per-operation guard policy."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from submit_guard.config import settings
from submit_guard.exceptions import ConfigurationError

# Accepted spellings for each strategy (case-insensitive)
_STRATEGY_ALIASES = {
    "param": "param",
    "params": "param",
    "parameters": "param",
    "by_parameters": "param",
    "byparameters": "param",
    "token": "token",
    "by_token": "token",
    "bytoken": "token",
}


class Strategy(str, Enum):
    """How a request is fingerprinted."""

    BY_PARAMETERS = "param"
    BY_TOKEN = "token"


class GuardPolicy(BaseModel):
    """
    Repeat submit policy attached to one protected operation.

    Attributes:
        strategy: Fingerprinting strategy
        window_seconds: How long an accepted fingerprint suppresses repeats

    Invalid values raise ConfigurationError when the policy is built, so a
    bad policy fails at route registration rather than on a live request.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    strategy: Strategy = Field(
        default_factory=lambda: settings.guard_default_strategy,
        description="param (operation + arguments) or token (session + path)",
    )
    window_seconds: float = Field(
        default_factory=lambda: settings.guard_default_window_seconds,
        gt=0,
        description="Suppression window in seconds",
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                message="Invalid repeat submit policy",
                details={
                    "errors": [
                        {
                            "field": ".".join(str(loc) for loc in error["loc"]),
                            "message": error["msg"],
                        }
                        for error in exc.errors()
                    ]
                },
            ) from exc

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v: Any) -> Any:
        """Map aliases such as 'PARAM' or 'ByToken' onto Strategy values."""
        if isinstance(v, str) and not isinstance(v, Strategy):
            return _STRATEGY_ALIASES.get(v.strip().lower(), v)
        return v
