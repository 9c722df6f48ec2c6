"""
Admin endpoints for the MTN MoMo collection flow.

Provider credentials never leave the server; the admin UI only sees
reference ids and mapped statuses.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from propdesk.database import async_session_factory, get_db
from propdesk.middleware.auth import get_current_user
from propdesk.middleware.authorization import require_roles
from propdesk.routes.payments import to_payment_response
from propdesk.schemas.momo import (
    BalanceResponse,
    BulkCheckResponse,
    PaymentRequestCreate,
    PaymentRequestResponse,
    StatusCheckRequest,
    StatusCheckResponse,
)
from propdesk.schemas.payment import PaymentResponse
from propdesk.services import payment_service
from propdesk.services.momo_client import MomoClient, get_momo_client
from propdesk.services.payment_service import PaymentChannel, StatusCheckResult

logger = structlog.get_logger()
router = APIRouter()


def _status_response(result: StatusCheckResult) -> StatusCheckResponse:
    return StatusCheckResponse(
        reference_id=result.reference_id,
        provider_status=result.provider_status.value,
        raw_status=result.raw_status,
        local_status=result.local_status.value if result.local_status else None,
        applied=result.applied,
        payment_id=result.payment_id,
        amount=result.amount,
        currency=result.currency,
        financial_transaction_id=result.financial_transaction_id,
        checked_at=result.checked_at.isoformat(),
    )


async def _create(
    body: PaymentRequestCreate,
    channel: PaymentChannel,
    current_user: dict,
    db: AsyncSession,
    client: MomoClient,
) -> PaymentRequestResponse:
    result = await payment_service.request_payment(
        db,
        client,
        msisdn=body.msisdn,
        amount=body.amount,
        payment_id=body.payment_id,
        channel=channel,
        currency=body.currency,
        description=body.description,
        validity_hours=body.validity_hours,
        actor=current_user,
    )
    return PaymentRequestResponse(
        reference_id=result.reference_id,
        external_id=result.external_id,
        channel=result.channel,
        payment_id=result.payment_id,
    )


@router.post(
    "/request-payment",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_payment(
    body: PaymentRequestCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
    client: MomoClient = Depends(get_momo_client),
):
    """Send a request-to-pay prompt to the payer's wallet."""
    return await _create(body, PaymentChannel.REQUEST_TO_PAY, current_user, db, client)


@router.post(
    "/invoices",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_invoice(
    body: PaymentRequestCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
    client: MomoClient = Depends(get_momo_client),
):
    """Create a provider invoice for the payer."""
    return await _create(body, PaymentChannel.INVOICE, current_user, db, client)


@router.post("/invoices/status", response_model=StatusCheckResponse)
async def check_status(
    body: StatusCheckRequest,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
    client: MomoClient = Depends(get_momo_client),
):
    result = await payment_service.check_payment_status(
        db,
        client,
        payment_id=body.payment_id,
        reference_id=body.reference_id,
        channel=body.channel,
        actor=current_user,
    )
    return _status_response(result)


@router.post("/invoices/check-all", response_model=BulkCheckResponse)
async def check_all(
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    client: MomoClient = Depends(get_momo_client),
):
    summary = await payment_service.check_all_pending(async_session_factory, client)
    return BulkCheckResponse(
        checked=summary.checked,
        updated=summary.updated,
        unchanged=summary.unchanged,
        failed=summary.failed,
        errors=summary.errors,
    )


@router.post("/invoices/{payment_id}/cancel", response_model=PaymentResponse)
async def cancel_invoice(
    payment_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
    client: MomoClient = Depends(get_momo_client),
):
    payment = await payment_service.cancel_payment_invoice(
        db, client, payment_id, actor=current_user
    )
    return to_payment_response(payment)


@router.get("/balance", response_model=BalanceResponse)
async def account_balance(
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    client: MomoClient = Depends(get_momo_client),
):
    balance = await client.get_account_balance()
    return BalanceResponse(
        available_balance=str(balance.get("availableBalance", "0")),
        currency=balance.get("currency", ""),
    )
