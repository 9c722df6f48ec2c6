"""
HTTP-level tests for the MoMo, webhook and internal job routes.

The database session and the provider client are swapped for mocks via
dependency overrides; auth runs for real against signed test tokens.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from propdesk.config import settings
from propdesk.exceptions import (
    MomoConfigurationError,
    MomoTokenError,
    MomoTransactionNotFound,
)
from propdesk.models.payment import Payment
from propdesk.services.momo_client import ProviderTransaction
from propdesk.services.payment_service import BulkCheckSummary


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_request_payment_requires_token(client):
    response = await client.post(
        "/api/v1/momo/request-payment", json={"msisdn": "+256123456789", "amount": "10"}
    )
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_request_payment_requires_admin(client, viewer_headers, momo):
    response = await client.post(
        "/api/v1/momo/request-payment",
        json={"msisdn": "+256123456789", "amount": "10"},
        headers=viewer_headers,
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"
    momo.request_to_pay.assert_not_awaited()


@pytest.mark.asyncio
async def test_bad_token_is_401(client):
    response = await client.get(
        "/api/v1/momo/balance", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_TOKEN_INVALID"


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_request_payment_invalid_msisdn_is_400(client, auth_headers, momo):
    response = await client.post(
        "/api/v1/momo/request-payment",
        json={"msisdn": "256123456789", "amount": "10"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VALIDATION_ERROR"
    momo.request_to_pay.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_invoice_returns_reference(client, auth_headers, momo):
    response = await client.post(
        "/api/v1/momo/invoices",
        json={"msisdn": "+256123456789", "amount": "1200", "currency": "EUR"},
        headers=auth_headers,
    )

    assert response.status_code == 202
    body = response.json()
    assert body["channel"] == "invoice"
    assert body["external_id"] == body["reference_id"]
    uuid.UUID(body["reference_id"])
    momo.create_invoice.assert_awaited_once()


@pytest.mark.asyncio
async def test_create_invoice_unconfigured_is_503(client, auth_headers, momo):
    momo.create_invoice.side_effect = MomoConfigurationError("Missing MTN MoMo credentials")

    response = await client.post(
        "/api/v1/momo/invoices",
        json={"msisdn": "+256123456789", "amount": "1200"},
        headers=auth_headers,
    )

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "MOMO_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_create_invoice_token_failure_is_502(client, auth_headers, momo):
    momo.create_invoice.side_effect = MomoTokenError("MTN MoMo token error: 401", status_code=401)

    response = await client.post(
        "/api/v1/momo/invoices",
        json={"msisdn": "+256123456789", "amount": "1200"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "MOMO_TOKEN_ERROR"


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_status_check_needs_an_id(client, auth_headers):
    response = await client.post("/api/v1/momo/invoices/status", json={}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_status_check_provider_404(client, auth_headers, momo):
    reference_id = str(uuid.uuid4())
    momo.get_invoice_status.side_effect = MomoTransactionNotFound(reference_id)

    response = await client.post(
        "/api/v1/momo/invoices/status",
        json={"reference_id": reference_id},
        headers=auth_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "MOMO_TRANSACTION_NOT_FOUND"


@pytest.mark.asyncio
async def test_balance(client, auth_headers, momo):
    momo.get_account_balance.return_value = {"availableBalance": "250.00", "currency": "EUR"}

    response = await client.get("/api/v1/momo/balance", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"available_balance": "250.00", "currency": "EUR"}


# ---------------------------------------------------------------------------
# payments
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_payment_includes_display(client, auth_headers, db_session):
    payment = Payment(
        id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        amount=Decimal("1200.00"),
        currency="EUR",
        status="expired",
        payment_method="mtn_momo",
        due_date=date(2026, 3, 1),
    )
    result = MagicMock()
    result.first.return_value = (payment, "Ada Tenant", "Unit 4B")
    db_session.execute.return_value = result

    response = await client.get(f"/api/v1/payments/{payment.id}", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["tenant_name"] == "Ada Tenant"
    assert body["display"] == {
        "display_text": "Expired",
        "badge_variant": "outline",
        "is_expired": True,
    }


@pytest.mark.asyncio
async def test_get_payment_bad_id(client, auth_headers):
    response = await client.get("/api/v1/payments/not-a-uuid", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_ID"


# ---------------------------------------------------------------------------
# webhook
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_callback_without_external_id_is_400(client):
    response = await client.post("/webhooks/momo", json={"status": "SUCCESSFUL"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_callback_unmatched_is_acknowledged(client):
    response = await client.post(
        "/webhooks/momo", json={"externalId": str(uuid.uuid4()), "status": "SUCCESSFUL"}
    )
    assert response.status_code == 200
    assert response.json() == {"received": True, "matched": False}


# ---------------------------------------------------------------------------
# internal jobs
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reconcile_job_rejects_wrong_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_JOB_SECRET", "s3cret")
    response = await client.post(
        "/internal/jobs/reconcile-pending", headers={"X-Internal-Secret": "nope"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_reconcile_job_runs_bulk_check(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_JOB_SECRET", "s3cret")
    summary = BulkCheckSummary(checked=2, updated=1, unchanged=1)

    with patch(
        "propdesk.jobs.scheduled.check_all_pending", AsyncMock(return_value=summary)
    ):
        response = await client.post(
            "/internal/jobs/reconcile-pending", headers={"X-Internal-Secret": "s3cret"}
        )

    assert response.status_code == 200
    assert response.json() == {"checked": 2, "updated": 1, "unchanged": 1, "failed": 0}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["db"] == "ok"


@pytest.mark.asyncio
async def test_callback_cannot_settle_payment_on_its_own_word(client, db_session, momo):
    reference_id = str(uuid.uuid4())
    payment = Payment(
        id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        amount=Decimal("850.00"),
        currency="EUR",
        status="pending",
        payment_method="mtn_momo",
        due_date=date(2099, 1, 31),
        momo_channel="invoice",
        momo_reference_id=reference_id,
        momo_invoice_status="PENDING",
    )
    payment.momo_external_id = str(payment.id)
    result = MagicMock()
    result.scalar_one_or_none.return_value = payment
    result.rowcount = 1
    db_session.execute.return_value = result
    momo.get_invoice_status.return_value = ProviderTransaction.from_payload(
        reference_id, {"status": "PENDING"}
    )

    response = await client.post(
        "/webhooks/momo", json={"externalId": str(payment.id), "status": "SUCCESSFUL"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    momo.get_invoice_status.assert_awaited_once_with(reference_id)
    assert payment.status == "pending"
    assert payment.paid_date is None
