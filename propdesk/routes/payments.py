from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from propdesk.database import get_db
from propdesk.middleware.auth import get_current_user
from propdesk.middleware.authorization import require_roles
from propdesk.models.payment import Payment
from propdesk.models.property import Property
from propdesk.models.tenant import Tenant
from propdesk.routes.common import iso, parse_uuid
from propdesk.schemas.common import PaginatedResponse, Pagination, page_offset
from propdesk.schemas.payment import (
    PaymentCreate,
    PaymentUpdate,
    PaymentResponse,
    StatusDisplayResponse,
)
from propdesk.services.reconciliation import LocalStatus, status_display

logger = structlog.get_logger()
router = APIRouter()


def to_payment_response(
    p: Payment,
    tenant_name: Optional[str] = None,
    property_name: Optional[str] = None,
) -> PaymentResponse:
    display = status_display(p.status, p.momo_error_message)
    return PaymentResponse(
        id=str(p.id),
        tenant_id=str(p.tenant_id),
        property_id=str(p.property_id) if p.property_id else None,
        amount=p.amount,
        currency=p.currency,
        status=p.status,
        payment_method=p.payment_method,
        due_date=iso(p.due_date),
        paid_date=p.paid_date.isoformat() if p.paid_date else None,
        momo_channel=p.momo_channel,
        momo_reference_id=p.momo_reference_id,
        momo_external_id=p.momo_external_id,
        momo_request_status=p.momo_request_status,
        momo_invoice_status=p.momo_invoice_status,
        momo_financial_transaction_id=p.momo_financial_transaction_id,
        momo_error_code=p.momo_error_code,
        momo_error_message=p.momo_error_message,
        display=StatusDisplayResponse(
            display_text=display.display_text,
            badge_variant=display.badge_variant,
            is_expired=display.is_expired,
        ),
        tenant_name=tenant_name,
        property_name=property_name,
        created_at=iso(p.created_at),
        updated_at=iso(p.updated_at),
    )


def _joined():
    return (
        select(Payment, Tenant.name, Property.name)
        .outerjoin(Tenant, Payment.tenant_id == Tenant.id)
        .outerjoin(Property, Payment.property_id == Property.id)
    )


async def _get_or_404(db: AsyncSession, payment_id: str):
    result = await db.execute(
        _joined().where(Payment.id == parse_uuid(payment_id, "payment id"))
    )
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Payment not found")
    return row


@router.get("", response_model=PaginatedResponse[PaymentResponse])
async def list_payments(
    page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
    pay_status: str = Query(None, alias="status"),
    tenant_id: str = Query(None),
    invoices_only: bool = Query(False, description="Only payments linked to a MoMo reference"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = _joined()
    count_q = select(func.count(Payment.id))
    if pay_status:
        q = q.where(Payment.status == pay_status)
        count_q = count_q.where(Payment.status == pay_status)
    if tenant_id:
        tid = parse_uuid(tenant_id, "tenant id")
        q = q.where(Payment.tenant_id == tid)
        count_q = count_q.where(Payment.tenant_id == tid)
    if invoices_only:
        q = q.where(Payment.momo_reference_id.is_not(None))
        count_q = count_q.where(Payment.momo_reference_id.is_not(None))

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Payment.created_at.desc()).offset(page_offset(page, limit)).limit(limit)
    )
    items = [to_payment_response(p, tn, pn) for p, tn, pn in result.all()]
    return PaginatedResponse(data=items, pagination=Pagination.of(page, limit, total))


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    p, tenant_name, property_name = await _get_or_404(db, payment_id)
    return to_payment_response(p, tenant_name, property_name)


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: PaymentCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    tenant_id = parse_uuid(body.tenant_id, "tenant id")
    tenant = (await db.execute(select(Tenant).where(Tenant.id == tenant_id))).scalar_one_or_none()
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")

    property_id = parse_uuid(body.property_id, "property id") if body.property_id else tenant.property_id

    payment = Payment(
        tenant_id=tenant_id,
        property_id=property_id,
        amount=body.amount,
        currency=body.currency.upper(),
        due_date=body.due_date,
        payment_method=body.payment_method,
        status=body.status,
    )
    db.add(payment)
    await db.flush()
    logger.info("payment_created", payment_id=str(payment.id), amount=str(body.amount))

    p, tenant_name, property_name = await _get_or_404(db, str(payment.id))
    return to_payment_response(p, tenant_name, property_name)


@router.patch("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: str, body: PaymentUpdate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    payment, _, _ = await _get_or_404(db, payment_id)
    data = body.model_dump(exclude_unset=True)
    new_status = data.get("status")
    # Provider-settled rows only change through reconciliation
    if (
        new_status
        and new_status != payment.status
        and payment.momo_reference_id
        and LocalStatus(payment.status).is_terminal
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "PAYMENT_SETTLED",
                "message": f"Payment is already {payment.status} with the provider",
            },
        )

    for field, val in data.items():
        setattr(payment, field, val)
    # paid_date belongs to the paid status only
    if payment.status != LocalStatus.PAID.value:
        payment.paid_date = None
    elif payment.paid_date is None:
        payment.paid_date = datetime.utcnow().date()
    await db.flush()

    p, tenant_name, property_name = await _get_or_404(db, payment_id)
    return to_payment_response(p, tenant_name, property_name)


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    payment, _, _ = await _get_or_404(db, payment_id)
    await db.delete(payment)
    logger.info("payment_deleted", payment_id=payment_id)
