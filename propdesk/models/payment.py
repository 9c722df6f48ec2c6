import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Numeric,
    Date,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propdesk.database import Base

PAYMENT_METHODS = ("mtn_momo", "bank_transfer", "cash", "check")


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("properties.id", ondelete="SET NULL")
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_method: Mapped[str] = mapped_column(String(20), default="mtn_momo")
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[Optional[date]] = mapped_column(Date)

    # Provider linkage; empty until a request/invoice is created
    momo_channel: Mapped[Optional[str]] = mapped_column(String(20))
    momo_reference_id: Mapped[Optional[str]] = mapped_column(String(64))
    momo_external_id: Mapped[Optional[str]] = mapped_column(String(64))
    momo_request_status: Mapped[Optional[str]] = mapped_column(String(20))
    momo_invoice_status: Mapped[Optional[str]] = mapped_column(String(20))
    momo_financial_transaction_id: Mapped[Optional[str]] = mapped_column(String(64))
    momo_error_code: Mapped[Optional[str]] = mapped_column(String(100))
    momo_error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_amount"),
        CheckConstraint(
            "status IN ('pending','paid','overdue','failed','expired','cancelled')",
            name="chk_payment_status",
        ),
        CheckConstraint(
            "payment_method IN ('mtn_momo','bank_transfer','cash','check')",
            name="chk_payment_method",
        ),
        Index("idx_payments_tenant", "tenant_id"),
        Index("idx_payments_status", "status"),
        Index("idx_payments_momo_reference", "momo_reference_id", unique=True),
        Index("idx_payments_momo_external", "momo_external_id"),
    )
