from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from propdesk.services.payment_service import PaymentChannel


class PaymentRequestCreate(BaseModel):
    """Body for both request-to-pay and invoice creation.

    Amount and phone are validated again by the service; these bounds only
    keep obviously broken bodies out.
    """

    msisdn: str = Field(..., min_length=1, max_length=32)
    amount: Decimal
    payment_id: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    description: str = Field("Rent invoice", max_length=160)
    validity_hours: Optional[int] = Field(None, ge=1, le=720)


class PaymentRequestResponse(BaseModel):
    reference_id: str
    external_id: str
    channel: PaymentChannel
    payment_id: Optional[str] = None


class StatusCheckRequest(BaseModel):
    payment_id: Optional[str] = None
    reference_id: Optional[str] = None
    channel: PaymentChannel = PaymentChannel.INVOICE

    @model_validator(mode="after")
    def _one_id(self):
        if not self.payment_id and not self.reference_id:
            raise ValueError("referenceId or paymentId required")
        return self


class StatusCheckResponse(BaseModel):
    reference_id: str
    provider_status: str
    raw_status: Optional[str] = None
    local_status: Optional[str] = None
    applied: bool
    payment_id: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    financial_transaction_id: Optional[str] = None
    checked_at: str


class BulkCheckResponse(BaseModel):
    checked: int
    updated: int
    unchanged: int
    failed: int
    errors: dict[str, str] = {}


class BalanceResponse(BaseModel):
    available_balance: str
    currency: str
