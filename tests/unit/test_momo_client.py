"""
Unit tests for propdesk/services/momo_client.py

The provider is replaced by httpx.MockTransport; no network access.
"""

import base64
import json
import uuid
from decimal import Decimal

import httpx
import pytest

from propdesk.exceptions import (
    MomoConfigurationError,
    MomoProviderError,
    MomoTokenError,
    MomoTransactionNotFound,
)
from propdesk.services.momo_client import MomoClient, format_amount
from propdesk.services.reconciliation import ProviderStatus

BASE_URL = "https://momo.test"


def _client(handler, **overrides) -> MomoClient:
    kwargs = dict(
        base_url=BASE_URL,
        subscription_key="sub-key",
        api_user="api-user",
        api_key="api-key",
        target_environment="sandbox",
        callback_url="https://propdesk.test/webhooks/momo",
    )
    kwargs.update(overrides)
    return MomoClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def _token_response():
    return httpx.Response(200, json={"access_token": "tok-123", "expires_in": 3600})


# ---------------------------------------------------------------------------
# format_amount
# ---------------------------------------------------------------------------


def test_format_amount_whole():
    assert format_amount(Decimal("1500")) == "1500"
    assert format_amount(Decimal("1500.00")) == "1500"


def test_format_amount_fraction():
    assert format_amount(Decimal("12.5")) == "12.50"


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_token_uses_basic_auth_and_subscription_key():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["method"] = request.method
        seen["auth"] = request.headers["Authorization"]
        seen["sub"] = request.headers["Ocp-Apim-Subscription-Key"]
        return _token_response()

    client = _client(handler)
    token = await client.get_access_token()

    assert token == "tok-123"
    assert seen["method"] == "POST"
    assert seen["path"] == "/collection/token/"
    expected = base64.b64encode(b"api-user:api-key").decode()
    assert seen["auth"] == f"Basic {expected}"
    assert seen["sub"] == "sub-key"


@pytest.mark.asyncio
async def test_token_failure_raises_token_error():
    client = _client(lambda request: httpx.Response(401, text="bad credentials"))

    with pytest.raises(MomoTokenError) as exc_info:
        await client.get_access_token()

    assert exc_info.value.status_code == 401
    assert "bad credentials" in exc_info.value.message


@pytest.mark.asyncio
async def test_token_missing_in_body_raises_token_error():
    client = _client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(MomoTokenError):
        await client.get_access_token()


@pytest.mark.asyncio
async def test_missing_credentials_raise_before_any_request():
    calls = []

    def handler(request):
        calls.append(request)
        return _token_response()

    client = _client(handler, api_key="")

    with pytest.raises(MomoConfigurationError):
        await client.get_access_token()
    assert calls == []


@pytest.mark.asyncio
async def test_network_error_becomes_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(MomoProviderError):
        await client.get_access_token()


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_invoice_sends_reference_and_payload():
    reference_id = str(uuid.uuid4())
    captured = {}

    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        captured["path"] = request.url.path
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(202)

    client = _client(handler)
    await client.create_invoice(
        reference_id=reference_id,
        amount=Decimal("1200"),
        currency="EUR",
        external_id="ext-1",
        msisdn="+256123456789",
        payee_msisdn="+4611234567",
        validity_hours=24,
        description="March rent",
    )

    assert captured["path"] == "/collection/v2_0/invoice"
    assert captured["headers"]["X-Reference-Id"] == reference_id
    assert captured["headers"]["X-Target-Environment"] == "sandbox"
    assert captured["headers"]["Authorization"] == "Bearer tok-123"
    assert captured["headers"]["X-Callback-Url"] == "https://propdesk.test/webhooks/momo"
    body = captured["body"]
    assert body["amount"] == "1200"
    assert body["externalId"] == "ext-1"
    assert body["validityDuration"] == "86400"
    assert body["intendedPayer"] == {"partyIdType": "MSISDN", "partyId": "+256123456789"}


@pytest.mark.asyncio
async def test_request_to_pay_strips_plus_from_payer():
    captured = {}

    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(202)

    client = _client(handler)
    await client.request_to_pay(
        reference_id=str(uuid.uuid4()),
        amount=Decimal("50.25"),
        currency="EUR",
        external_id="ext-2",
        msisdn="+256123456789",
    )

    assert captured["path"] == "/collection/v1_0/requesttopay"
    assert captured["body"]["payer"]["partyId"] == "256123456789"
    assert captured["body"]["amount"] == "50.25"


@pytest.mark.asyncio
async def test_create_rejected_by_provider():
    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        return httpx.Response(409, text='{"code":"RESOURCE_ALREADY_EXIST"}')

    client = _client(handler)

    with pytest.raises(MomoProviderError) as exc_info:
        await client.create_invoice(
            reference_id=str(uuid.uuid4()),
            amount=Decimal("10"),
            currency="EUR",
            external_id="ext-3",
            msisdn="+256123456789",
            payee_msisdn="+4611234567",
        )
    assert exc_info.value.status_code == 409


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_invoice_status_parsed():
    reference_id = str(uuid.uuid4())

    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        assert request.url.path == f"/collection/v2_0/invoice/{reference_id}"
        return httpx.Response(
            200,
            json={
                "status": "SUCCESSFUL",
                "amount": "1200",
                "currency": "EUR",
                "financialTransactionId": "987654",
                "externalId": "ext-1",
            },
        )

    client = _client(handler)
    transaction = await client.get_invoice_status(reference_id)

    assert transaction.status is ProviderStatus.SUCCESSFUL
    assert transaction.amount == "1200"
    assert transaction.financial_transaction_id == "987654"


@pytest.mark.asyncio
async def test_status_404_is_transaction_not_found():
    reference_id = str(uuid.uuid4())

    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        return httpx.Response(404, text="not found")

    client = _client(handler)

    with pytest.raises(MomoTransactionNotFound) as exc_info:
        await client.get_request_to_pay_status(reference_id)
    assert exc_info.value.reference_id == reference_id
    assert exc_info.value.http_status == 404


@pytest.mark.asyncio
async def test_status_403_has_permission_message():
    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        return httpx.Response(403, text="forbidden")

    client = _client(handler)

    with pytest.raises(MomoProviderError) as exc_info:
        await client.get_invoice_status(str(uuid.uuid4()))
    assert "subscription key" in exc_info.value.message


# ---------------------------------------------------------------------------
# cancel / balance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancel_invoice_sends_external_id():
    captured = {}

    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        captured["method"] = request.method
        captured["body"] = json.loads(request.content)
        return httpx.Response(200)

    client = _client(handler)
    await client.cancel_invoice(str(uuid.uuid4()), "ext-9")

    assert captured["method"] == "DELETE"
    assert captured["body"] == {"externalId": "ext-9"}


@pytest.mark.asyncio
async def test_account_balance():
    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        return httpx.Response(200, json={"availableBalance": "1000", "currency": "EUR"})

    client = _client(handler)
    balance = await client.get_account_balance()
    assert balance == {"availableBalance": "1000", "currency": "EUR"}


# ---------------------------------------------------------------------------
# unreadable bodies
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_token_body_not_json_raises_token_error():
    client = _client(lambda request: httpx.Response(200, text="<html>gateway</html>"))

    with pytest.raises(MomoTokenError) as exc_info:
        await client.get_access_token()
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_status_body_not_json_raises_provider_error():
    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        return httpx.Response(200, text="<html>maintenance</html>")

    client = _client(handler)

    with pytest.raises(MomoProviderError) as exc_info:
        await client.get_invoice_status(str(uuid.uuid4()))
    assert "maintenance" in exc_info.value.body


@pytest.mark.asyncio
async def test_balance_body_not_an_object_raises_provider_error():
    def handler(request: httpx.Request):
        if request.url.path == "/collection/token/":
            return _token_response()
        return httpx.Response(200, json=["1000", "EUR"])

    client = _client(handler)

    with pytest.raises(MomoProviderError):
        await client.get_account_balance()
