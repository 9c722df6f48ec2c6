from datetime import date
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field

PaymentMethod = Literal["mtn_momo", "bank_transfer", "cash", "check"]
PaymentStatus = Literal["pending", "paid", "overdue", "failed", "expired", "cancelled"]


class PaymentCreate(BaseModel):
    tenant_id: str
    property_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0, le=1_000_000_000, decimal_places=2)
    currency: str = Field("EUR", min_length=3, max_length=3)
    due_date: date
    payment_method: PaymentMethod = "mtn_momo"
    status: PaymentStatus = "pending"


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, le=1_000_000_000, decimal_places=2)
    due_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    status: Optional[PaymentStatus] = None
    paid_date: Optional[date] = None


class StatusDisplayResponse(BaseModel):
    display_text: str
    badge_variant: str
    is_expired: bool = False


class PaymentResponse(BaseModel):
    id: str
    tenant_id: str
    property_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    due_date: str
    paid_date: Optional[str] = None
    momo_channel: Optional[str] = None
    momo_reference_id: Optional[str] = None
    momo_external_id: Optional[str] = None
    momo_request_status: Optional[str] = None
    momo_invoice_status: Optional[str] = None
    momo_financial_transaction_id: Optional[str] = None
    momo_error_code: Optional[str] = None
    momo_error_message: Optional[str] = None
    display: StatusDisplayResponse
    tenant_name: Optional[str] = None
    property_name: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
