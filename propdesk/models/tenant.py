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
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from propdesk.database import Base

TENANT_STATUSES = ("active", "inactive", "overdue", "pending")


class Tenant(Base):
    """A renter. Not to be confused with an organisation: this is a person."""

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("properties.id", ondelete="SET NULL")
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    rent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deposit: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    lease_start: Mapped[date] = mapped_column(Date, nullable=False)
    lease_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    emergency_contacts: Mapped[list] = mapped_column(JSONB, default=list)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text)
    id_document_url: Mapped[Optional[str]] = mapped_column(Text)
    lease_document_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("lease_end >= lease_start", name="chk_tenant_lease_dates"),
        CheckConstraint(
            "status IN ('active','inactive','overdue','pending')",
            name="chk_tenant_status",
        ),
        Index("idx_tenants_property", "property_id"),
        Index("idx_tenants_status", "status"),
    )
