"""Pydantic schemas for the demo submission endpoints."""

from decimal import Decimal

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    """
    Request schema for a funds transfer.

    Attributes:
        to_account: Destination account number
        amount: Amount to move (must be positive)
        currency: ISO 4217 currency code
    """

    to_account: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class TransferResponse(BaseModel):
    """Response schema for an accepted transfer."""

    status: str = "accepted"
    from_account: str
    to_account: str
    amount: Decimal
    currency: str
