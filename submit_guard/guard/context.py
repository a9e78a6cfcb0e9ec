"""Request identity handed to the guard by the request-handling layer."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RequestContext(BaseModel):
    """
    Identity of one incoming request.

    Attributes:
        operation_id: Declaring scope + operation name of the target handler
        parameters: Ordered argument values passed to the handler
        auth_token: Caller credential or session identifier, if any
        resource_path: Logical endpoint path
    """

    model_config = ConfigDict(frozen=True)

    operation_id: str = Field(..., min_length=1)
    parameters: tuple[Any, ...] = ()
    auth_token: str | None = None
    resource_path: str = ""
