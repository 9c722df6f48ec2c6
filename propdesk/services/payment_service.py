"""
Mobile-money payment workflow: request → poll/callback → local update.

All functions that take a session use the caller's session and only flush;
get_db() commits. The bulk check is the exception: it opens one session
per payment so the checks can run concurrently.
"""

import asyncio
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
import structlog

from propdesk.config import settings
from propdesk.exceptions import (
    MomoTimeoutError,
    PaymentNotFoundError,
    PaymentValidationError,
    PropDeskError,
)
from propdesk.logging_config import mask
from propdesk.models.payment import Payment
from propdesk.services.audit_service import create_audit_log
from propdesk.services.momo_client import MomoClient, ProviderTransaction
from propdesk.services.reconciliation import (
    OPEN_STATUSES,
    LocalStatus,
    ProviderStatus,
    StatusUpdate,
    map_provider_status,
)

logger = structlog.get_logger()

MSISDN_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
_PHONE_FORMATTING = re.compile(r"[\s\-().]")
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

MAX_AMOUNT = Decimal("1000000000")
SUPPORTED_CURRENCIES = {"EUR", "UGX", "USD"}
PROVIDER_STATUS_WIDTH = Payment.__table__.c.momo_invoice_status.type.length


class PaymentChannel(str, Enum):
    """Which provider endpoint family a payment was created through."""

    REQUEST_TO_PAY = "request_to_pay"
    INVOICE = "invoice"

    @property
    def status_column(self) -> str:
        if self is PaymentChannel.REQUEST_TO_PAY:
            return "momo_request_status"
        return "momo_invoice_status"


@dataclass
class PaymentRequestResult:
    reference_id: str
    external_id: str
    channel: PaymentChannel
    payment_id: Optional[str] = None


@dataclass
class StatusCheckResult:
    reference_id: str
    provider_status: ProviderStatus
    raw_status: Optional[str]
    local_status: Optional[LocalStatus] = None
    applied: bool = False
    payment_id: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    financial_transaction_id: Optional[str] = None
    checked_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class BulkCheckSummary:
    checked: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Local validation, all of it before any network call
# ---------------------------------------------------------------------------


def validate_msisdn(raw: Optional[str]) -> str:
    """
    Return the number in ``+<country><subscriber>`` form.

    Spaces, dashes, dots and parentheses are treated as formatting; anything
    else (letters, a missing ``+``) is rejected.
    """
    if raw is None or not str(raw).strip():
        raise PaymentValidationError("Phone number is required")
    cleaned = _PHONE_FORMATTING.sub("", str(raw).strip())
    if not MSISDN_PATTERN.match(cleaned):
        raise PaymentValidationError(
            "Invalid MSISDN format. Must be in international format "
            "(e.g., +256123456789)"
        )
    return cleaned


def validate_amount(amount: Any) -> Decimal:
    if amount is None or isinstance(amount, bool):
        raise PaymentValidationError("Amount is required")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise PaymentValidationError("Amount must be a number")
    if not value.is_finite():
        raise PaymentValidationError("Amount must be a number")
    if value <= 0:
        raise PaymentValidationError("Amount must be greater than 0")
    if value > MAX_AMOUNT:
        raise PaymentValidationError("Amount is too large")
    if value.as_tuple().exponent < -2:
        raise PaymentValidationError("Amount can have at most 2 decimal places")
    return value


def validate_currency(currency: Optional[str]) -> str:
    code = (currency or settings.MOMO_CURRENCY).upper()
    if code not in SUPPORTED_CURRENCIES:
        raise PaymentValidationError(
            f"Invalid currency. Supported: {', '.join(sorted(SUPPORTED_CURRENCIES))}"
        )
    return code


def validate_correlation_id(value: Any) -> Optional[str]:
    """Local payment ids double as the provider's externalId."""
    if value is None or value == "":
        return None
    if not UUID_PATTERN.match(str(value)):
        raise PaymentValidationError("Invalid payment id format. Must be a valid UUID.")
    return str(value).lower()


def validate_reference_id(value: Any) -> str:
    if not value:
        raise PaymentValidationError("Reference ID is required")
    if not UUID_PATTERN.match(str(value)):
        raise PaymentValidationError("Invalid reference ID format. Must be a valid UUID.")
    return str(value)


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


async def _get_payment(session: AsyncSession, payment_id: str) -> Payment:
    result = await session.execute(select(Payment).where(Payment.id == uuid.UUID(payment_id)))
    payment = result.scalar_one_or_none()
    if not payment:
        raise PaymentNotFoundError(f"Payment {payment_id} not found")
    return payment


async def _find_by_reference(session: AsyncSession, reference_id: str) -> Optional[Payment]:
    result = await session.execute(
        select(Payment).where(Payment.momo_reference_id == reference_id)
    )
    return result.scalar_one_or_none()


def _channel_of(payment: Payment) -> PaymentChannel:
    if payment.momo_channel:
        return PaymentChannel(payment.momo_channel)
    if payment.momo_request_status and not payment.momo_invoice_status:
        return PaymentChannel.REQUEST_TO_PAY
    return PaymentChannel.INVOICE


def _snapshot(payment: Payment) -> dict:
    return {
        "status": payment.status,
        "paid_date": payment.paid_date,
        "momo_reference_id": payment.momo_reference_id,
        "momo_request_status": payment.momo_request_status,
        "momo_invoice_status": payment.momo_invoice_status,
        "momo_error_code": payment.momo_error_code,
        "momo_error_message": payment.momo_error_message,
    }


def _today() -> date:
    return datetime.utcnow().date()


# ---------------------------------------------------------------------------
# Invoice Requestor
# ---------------------------------------------------------------------------


async def request_payment(
    session: AsyncSession,
    client: MomoClient,
    msisdn: str,
    amount: Any,
    payment_id: Optional[str] = None,
    channel: PaymentChannel = PaymentChannel.INVOICE,
    currency: Optional[str] = None,
    description: str = "Rent invoice",
    validity_hours: Optional[int] = None,
    actor: Optional[dict] = None,
) -> PaymentRequestResult:
    """
    Ask the provider to collect ``amount`` from ``msisdn``.

    When ``payment_id`` is given the local row is linked to the provider's
    reference id. Validation failures raise before the provider is called.
    """
    phone = validate_msisdn(msisdn)
    value = validate_amount(amount)
    payment_id = validate_correlation_id(payment_id)

    payment = None
    if payment_id:
        payment = await _get_payment(session, payment_id)
        if payment.status == LocalStatus.PAID.value:
            raise PaymentValidationError("Payment is already paid")
        currency = currency or payment.currency
    currency = validate_currency(currency)

    reference_id = str(uuid.uuid4())
    external_id = payment_id or reference_id

    if channel is PaymentChannel.REQUEST_TO_PAY:
        await client.request_to_pay(
            reference_id=reference_id,
            amount=value,
            currency=currency,
            external_id=external_id,
            msisdn=phone,
            payer_message=description,
            payee_note=description,
            validity_hours=validity_hours,
        )
    else:
        await client.create_invoice(
            reference_id=reference_id,
            amount=value,
            currency=currency,
            external_id=external_id,
            msisdn=phone,
            payee_msisdn=settings.MOMO_PAYEE_MSISDN,
            validity_hours=validity_hours or settings.MOMO_INVOICE_VALIDITY_HOURS,
            description=description,
        )

    if payment is not None:
        before = _snapshot(payment)
        payment.momo_channel = channel.value
        payment.momo_reference_id = reference_id
        payment.momo_external_id = external_id
        payment.payment_method = "mtn_momo"
        payment.status = LocalStatus.PENDING.value
        payment.paid_date = None
        payment.momo_error_code = None
        payment.momo_error_message = None
        setattr(payment, channel.status_column, ProviderStatus.PENDING.value)
        await session.flush()

        await create_audit_log(
            session,
            action="PAYMENT_REQUEST_LINKED",
            entity_type="PAYMENT",
            entity_id=payment.id,
            before_state=before,
            after_state=_snapshot(payment),
            actor=actor,
        )

    logger.info(
        "payment_requested",
        channel=channel.value,
        reference_id=mask(reference_id, 8),
        payment_id=payment_id,
        msisdn=mask(phone),
    )
    return PaymentRequestResult(
        reference_id=reference_id,
        external_id=external_id,
        channel=channel,
        payment_id=payment_id,
    )


# ---------------------------------------------------------------------------
# Local Record Updater
# ---------------------------------------------------------------------------


async def apply_status_update(
    session: AsyncSession,
    payment_id,
    status_update: StatusUpdate,
    channel: PaymentChannel,
    raw_status: Optional[str] = None,
    financial_transaction_id: Optional[str] = None,
    row: Optional[Payment] = None,
) -> bool:
    """
    Persist a mapped status onto the payment row.

    The write only lands while the row is still open (pending, overdue or
    expired); a row that already reached paid, failed or cancelled is left
    alone and False is returned. When ``row`` is the loaded instance it is
    brought in line with what was written.
    """
    values = status_update.as_row_values()
    raw = str(raw_status or status_update.provider_status.value).strip().upper()
    values[channel.status_column] = raw[:PROVIDER_STATUS_WIDTH]
    if financial_transaction_id:
        values["momo_financial_transaction_id"] = financial_transaction_id
    values["updated_at"] = datetime.utcnow()

    result = await session.execute(
        update(Payment)
        .where(
            Payment.id == uuid.UUID(str(payment_id)),
            Payment.status.in_([s.value for s in OPEN_STATUSES]),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    applied = (result.rowcount or 0) > 0

    if applied and row is not None:
        for key, value in values.items():
            set_committed_value(row, key, value)
    return applied


# ---------------------------------------------------------------------------
# Status Poller
# ---------------------------------------------------------------------------


async def _fetch_status(
    client: MomoClient, reference_id: str, channel: PaymentChannel
) -> ProviderTransaction:
    if channel is PaymentChannel.REQUEST_TO_PAY:
        return await client.get_request_to_pay_status(reference_id)
    return await client.get_invoice_status(reference_id)


async def _reconcile(
    session: AsyncSession,
    payment: Payment,
    transaction: ProviderTransaction,
    today: date,
    actor: Optional[dict] = None,
    source: str = "poll",
) -> StatusCheckResult:
    channel = _channel_of(payment)
    status_update = map_provider_status(
        transaction.status, payment.due_date, today, transaction.reason
    )
    if status_update.unexpected:
        logger.warning(
            "payment_status_unexpected",
            payment_id=str(payment.id),
            raw_status=transaction.raw_status,
            source=source,
        )

    before = _snapshot(payment)
    applied = await apply_status_update(
        session,
        payment.id,
        status_update,
        channel,
        raw_status=transaction.raw_status,
        financial_transaction_id=transaction.financial_transaction_id,
        row=payment,
    )

    if applied:
        await create_audit_log(
            session,
            action="PAYMENT_RECONCILED",
            entity_type="PAYMENT",
            entity_id=payment.id,
            before_state=before,
            after_state=_snapshot(payment),
            actor=actor,
        )
        logger.info(
            "payment_reconciled",
            payment_id=str(payment.id),
            provider_status=transaction.raw_status,
            local_status=status_update.local_status.value,
            source=source,
        )
    else:
        logger.info(
            "payment_reconcile_skipped",
            payment_id=str(payment.id),
            current_status=payment.status,
            provider_status=transaction.raw_status,
            source=source,
        )

    return StatusCheckResult(
        reference_id=transaction.reference_id,
        provider_status=transaction.status,
        raw_status=transaction.raw_status,
        local_status=status_update.local_status,
        applied=applied,
        payment_id=str(payment.id),
        amount=transaction.amount,
        currency=transaction.currency,
        financial_transaction_id=transaction.financial_transaction_id,
    )


async def check_payment_status(
    session: AsyncSession,
    client: MomoClient,
    payment_id: Optional[str] = None,
    reference_id: Optional[str] = None,
    channel: PaymentChannel = PaymentChannel.INVOICE,
    today: Optional[date] = None,
    actor: Optional[dict] = None,
    source: str = "poll",
) -> StatusCheckResult:
    """
    Fetch the provider's view of a transaction and reconcile the local row.

    Either id is enough: a payment id is resolved to its reference id, and a
    bare reference id is matched to a row if one is linked. A provider 404
    raises MomoTransactionNotFound before anything is written.
    """
    if not payment_id and not reference_id:
        raise PaymentValidationError("referenceId or paymentId required")

    payment = None
    if payment_id:
        payment_id = validate_correlation_id(payment_id)
        payment = await _get_payment(session, payment_id)
        if not payment.momo_reference_id:
            raise PaymentValidationError("No momo_reference_id found for payment")
        reference_id = payment.momo_reference_id
    else:
        reference_id = validate_reference_id(reference_id)
        payment = await _find_by_reference(session, reference_id)

    if payment is not None:
        channel = _channel_of(payment)

    transaction = await _fetch_status(client, reference_id, channel)

    if payment is None:
        return StatusCheckResult(
            reference_id=reference_id,
            provider_status=transaction.status,
            raw_status=transaction.raw_status,
            amount=transaction.amount,
            currency=transaction.currency,
            financial_transaction_id=transaction.financial_transaction_id,
        )

    return await _reconcile(
        session, payment, transaction, today or _today(), actor=actor, source=source
    )


async def check_all_pending(
    session_factory: Callable[[], Any],
    client: MomoClient,
    today: Optional[date] = None,
) -> BulkCheckSummary:
    """
    Poll every linked, still-open payment concurrently.

    Each check gets its own session and transaction; a failure is logged
    and counted without touching the others.
    """
    async with session_factory() as session:
        result = await session.execute(
            select(Payment.id).where(
                Payment.momo_reference_id.is_not(None),
                Payment.status.in_([s.value for s in OPEN_STATUSES]),
            )
        )
        payment_ids = [str(pid) for pid in result.scalars().all()]

    summary = BulkCheckSummary(checked=len(payment_ids))
    if not payment_ids:
        logger.info("bulk_status_check_nothing_pending")
        return summary

    async def _check_one(pid: str):
        async with session_factory() as session:
            try:
                outcome = await check_payment_status(session, client, payment_id=pid, today=today)
                await session.commit()
                return pid, outcome, None
            except Exception as exc:
                await session.rollback()
                logger.error("bulk_status_check_failed", payment_id=pid, error=str(exc))
                return pid, None, exc

    for pid, outcome, exc in await asyncio.gather(*(_check_one(pid) for pid in payment_ids)):
        if exc is not None:
            summary.failed += 1
            summary.errors[pid] = exc.message if isinstance(exc, PropDeskError) else str(exc)
        elif outcome.applied:
            summary.updated += 1
        else:
            summary.unchanged += 1

    logger.info(
        "bulk_status_check_complete",
        checked=summary.checked,
        updated=summary.updated,
        unchanged=summary.unchanged,
        failed=summary.failed,
    )
    return summary


async def wait_for_completion(
    client: MomoClient,
    reference_id: str,
    channel: PaymentChannel = PaymentChannel.INVOICE,
    timeout_seconds: float = 300,
    poll_interval_seconds: float = 5,
) -> ProviderTransaction:
    """Poll until the provider reports a terminal status or the ceiling passes."""
    reference_id = validate_reference_id(reference_id)
    deadline = time.monotonic() + timeout_seconds

    while time.monotonic() < deadline:
        transaction = await _fetch_status(client, reference_id, channel)
        if transaction.status.is_terminal:
            return transaction
        await asyncio.sleep(poll_interval_seconds)

    raise MomoTimeoutError(
        f"Payment status check timed out after {timeout_seconds} seconds"
    )


# ---------------------------------------------------------------------------
# Cancel / callback
# ---------------------------------------------------------------------------


async def cancel_payment_invoice(
    session: AsyncSession,
    client: MomoClient,
    payment_id: str,
    actor: Optional[dict] = None,
) -> Payment:
    payment_id = validate_correlation_id(payment_id)
    if not payment_id:
        raise PaymentValidationError("Payment id is required")
    payment = await _get_payment(session, payment_id)

    if not payment.momo_reference_id:
        raise PaymentValidationError("No momo_reference_id for payment")
    if _channel_of(payment) is not PaymentChannel.INVOICE:
        raise PaymentValidationError("Only invoices can be cancelled")
    if LocalStatus(payment.status).is_terminal:
        raise PaymentValidationError(f"Cannot cancel a payment that is {payment.status}")

    await client.cancel_invoice(
        payment.momo_reference_id, payment.momo_external_id or str(payment.id)
    )

    before = _snapshot(payment)
    payment.status = LocalStatus.CANCELLED.value
    payment.momo_invoice_status = ProviderStatus.CANCELLED.value
    await session.flush()

    await create_audit_log(
        session,
        action="PAYMENT_INVOICE_CANCELLED",
        entity_type="PAYMENT",
        entity_id=payment.id,
        before_state=before,
        after_state=_snapshot(payment),
        actor=actor,
    )
    return payment


async def handle_provider_callback(
    session: AsyncSession,
    client: MomoClient,
    payload: dict,
    today: Optional[date] = None,
) -> Optional[StatusCheckResult]:
    """
    Treat a provider callback as a prompt to poll.

    The callback body is unsigned, so only its ids are used: the matched
    row is reconciled from the provider's own status endpoint. Returns None
    when no linked row matches.
    """
    external_id = payload.get("externalId")
    if not external_id:
        raise PaymentValidationError("Missing externalId in callback")

    result = await session.execute(
        select(Payment).where(Payment.momo_external_id == str(external_id))
    )
    payment = result.scalar_one_or_none()
    if payment is None and payload.get("referenceId"):
        payment = await _find_by_reference(session, str(payload["referenceId"]))

    if payment is None or not payment.momo_reference_id:
        logger.warning("momo_callback_unmatched", external_id=mask(str(external_id), 8))
        return None

    logger.info(
        "momo_callback_reconcile",
        payment_id=str(payment.id),
        reported_status=payload.get("status"),
    )
    return await check_payment_status(
        session, client, payment_id=str(payment.id), today=today, source="callback"
    )
