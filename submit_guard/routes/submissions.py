"""Demo endpoints protected by the repeat submit guard."""

from fastapi import APIRouter, Depends, status

from submit_guard.guard.policy import GuardPolicy, Strategy
from submit_guard.schemas.transfer import TransferRequest, TransferResponse
from submit_guard.web.dependencies import repeat_submit

router = APIRouter(tags=["Submissions"])

_DUPLICATE_RESPONSE = {
    429: {
        "description": "Duplicate submission within the guard window",
        "content": {
            "application/json": {
                "example": {
                    "status": "error",
                    "error_code": "DUPLICATE_SUBMISSION",
                    "message": "Duplicate submission, please do not submit again",
                    "details": {"retry_after": 5},
                }
            }
        },
    },
}


@router.post(
    "/saveCountInfo",
    responses=_DUPLICATE_RESPONSE,
    dependencies=[
        Depends(
            repeat_submit(GuardPolicy(strategy=Strategy.BY_TOKEN, window_seconds=10))
        )
    ],
)
async def save_count_info(accountNo: str | None = None) -> str:  # noqa: N803
    """
    Save account count info; one call per session every 10 seconds.

    The token strategy ignores the payload, so any second call from the
    same Authorization header within the window is rejected.
    """
    return "test OK"


@router.post(
    "/accounts/{account_no}/transfers",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_DUPLICATE_RESPONSE,
    dependencies=[Depends(repeat_submit(strategy=Strategy.BY_PARAMETERS))],
)
async def create_transfer(
    account_no: str, transfer: TransferRequest
) -> TransferResponse:
    """
    Submit a transfer; identical transfers within the window are rejected.

    A transfer with a different amount or destination is a different
    request and goes through.
    """
    return TransferResponse(
        from_account=account_no,
        to_account=transfer.to_account,
        amount=transfer.amount,
        currency=transfer.currency,
    )
