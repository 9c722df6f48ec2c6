"""
MTN MoMo Collections API client.

One ``MomoClient`` is built per process from settings (``get_momo_client``)
and handed to whoever needs it; it keeps no state beyond configuration and
the pooled ``httpx.AsyncClient``. Every operation fetches a fresh bearer
token first, so each call is two round trips. Nothing here retries.
"""

import base64
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx
import structlog

from propdesk.config import Settings, settings as default_settings
from propdesk.exceptions import (
    MomoConfigurationError,
    MomoProviderError,
    MomoTokenError,
    MomoTransactionNotFound,
)
from propdesk.logging_config import mask
from propdesk.services.reconciliation import ProviderStatus

logger = structlog.get_logger()

REQUEST_TO_PAY_PATH = "/collection/v1_0/requesttopay"
INVOICE_PATH = "/collection/v2_0/invoice"
TOKEN_PATH = "/collection/token/"
BALANCE_PATH = "/collection/v1_0/account/balance"


@dataclass
class ProviderTransaction:
    """Normalised view of a provider status response."""

    reference_id: str
    status: ProviderStatus
    raw_status: Optional[str]
    amount: Optional[str] = None
    currency: Optional[str] = None
    financial_transaction_id: Optional[str] = None
    external_id: Optional[str] = None
    reason: Any = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, reference_id: str, payload: dict) -> "ProviderTransaction":
        raw_status = payload.get("status")
        return cls(
            reference_id=reference_id,
            status=ProviderStatus.parse(raw_status),
            raw_status=raw_status,
            amount=_as_str(payload.get("amount")),
            currency=payload.get("currency"),
            financial_transaction_id=payload.get("financialTransactionId"),
            external_id=payload.get("externalId"),
            reason=payload.get("reason"),
            raw=payload,
        )


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def format_amount(amount: Decimal) -> str:
    """The API takes amounts as strings; whole amounts go without decimals."""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount.quantize(Decimal("0.01")))


class MomoClient:
    def __init__(
        self,
        base_url: str,
        subscription_key: str,
        api_user: str,
        api_key: str,
        target_environment: str = "sandbox",
        callback_url: Optional[str] = None,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.subscription_key = subscription_key
        self.api_user = api_user
        self.api_key = api_key
        self.target_environment = target_environment
        self.callback_url = callback_url
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    @classmethod
    def from_settings(
        cls, cfg: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "MomoClient":
        return cls(
            base_url=cfg.MOMO_BASE_URL,
            subscription_key=cfg.MOMO_SUBSCRIPTION_KEY,
            api_user=cfg.MOMO_API_USER,
            api_key=cfg.MOMO_API_KEY,
            target_environment=cfg.MOMO_TARGET_ENVIRONMENT,
            callback_url=cfg.MOMO_CALLBACK_URL,
            timeout=cfg.MOMO_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---------- plumbing ----------

    def _ensure_configured(self) -> None:
        if not (self.subscription_key and self.api_user and self.api_key):
            logger.error(
                "momo_credentials_missing",
                has_subscription_key=bool(self.subscription_key),
                has_api_user=bool(self.api_user),
                has_api_key=bool(self.api_key),
            )
            raise MomoConfigurationError("Missing MTN MoMo credentials")

    def _headers(self, token: str, reference_id: Optional[str] = None) -> dict:
        headers = {
            "Authorization": f"Bearer {token}",
            "Ocp-Apim-Subscription-Key": self.subscription_key,
            "X-Target-Environment": self.target_environment,
            "Content-Type": "application/json",
        }
        if reference_id:
            headers["X-Reference-Id"] = reference_id
        return headers

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TransportError as exc:
            logger.error("momo_network_error", method=method, path=path, error=str(exc))
            raise MomoProviderError(f"MTN MoMo network error: {exc}") from exc

    def _json(self, response: httpx.Response, operation: str, error_cls=MomoProviderError) -> dict:
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            body = response.text[:500]
            logger.error(
                "momo_invalid_json",
                operation=operation,
                status_code=response.status_code,
                body=body,
            )
            raise error_cls(
                f"MTN MoMo returned an unreadable {operation} response",
                status_code=response.status_code,
                body=body,
            )
        return data

    # ---------- token ----------

    async def get_access_token(self) -> str:
        self._ensure_configured()
        credentials = base64.b64encode(
            f"{self.api_user}:{self.api_key}".encode()
        ).decode()
        response = await self._send(
            "POST",
            TOKEN_PATH,
            headers={
                "Authorization": f"Basic {credentials}",
                "Ocp-Apim-Subscription-Key": self.subscription_key,
                "Content-Type": "application/json",
            },
        )
        if response.status_code != 200:
            body = response.text[:500]
            logger.error("momo_token_failed", status_code=response.status_code, body=body)
            raise MomoTokenError(
                f"MTN MoMo token error: {response.status_code} - {body}",
                status_code=response.status_code,
                body=body,
            )

        token = self._json(response, "token", MomoTokenError).get("access_token")
        if not token:
            logger.error("momo_token_missing_in_response")
            raise MomoTokenError(
                "No access token received from MTN MoMo API",
                status_code=response.status_code,
            )
        return token

    # ---------- collection requests ----------

    async def request_to_pay(
        self,
        reference_id: str,
        amount: Decimal,
        currency: str,
        external_id: str,
        msisdn: str,
        payer_message: str = "Rent invoice payment",
        payee_note: str = "Property rent invoice",
        validity_hours: Optional[int] = None,
    ) -> None:
        token = await self.get_access_token()
        payload: dict[str, Any] = {
            "amount": format_amount(amount),
            "currency": currency,
            "externalId": external_id,
            # requesttopay wants the bare digits
            "payer": {"partyIdType": "MSISDN", "partyId": msisdn.lstrip("+")},
            "payerMessage": payer_message,
            "payeeNote": payee_note,
        }
        if validity_hours:
            payload["validityDuration"] = validity_hours * 3600

        headers = self._headers(token, reference_id)
        if self.callback_url:
            headers["X-Callback-Url"] = self.callback_url

        response = await self._send("POST", REQUEST_TO_PAY_PATH, headers=headers, json=payload)
        self._raise_for_create(response, "request_to_pay", reference_id)
        logger.info(
            "momo_request_to_pay_created",
            reference_id=mask(reference_id, 8),
            msisdn=mask(msisdn),
            amount=payload["amount"],
            currency=currency,
        )

    async def create_invoice(
        self,
        reference_id: str,
        amount: Decimal,
        currency: str,
        external_id: str,
        msisdn: str,
        payee_msisdn: str,
        validity_hours: int = 24,
        description: str = "Invoice",
    ) -> None:
        token = await self.get_access_token()
        payload = {
            "externalId": external_id,
            "amount": format_amount(amount),
            "currency": currency,
            "validityDuration": str(validity_hours * 3600),
            "intendedPayer": {"partyIdType": "MSISDN", "partyId": msisdn},
            "payee": {"partyIdType": "MSISDN", "partyId": payee_msisdn},
            "description": description,
        }

        headers = self._headers(token, reference_id)
        if self.callback_url:
            headers["X-Callback-Url"] = self.callback_url

        response = await self._send("POST", INVOICE_PATH, headers=headers, json=payload)
        self._raise_for_create(response, "create_invoice", reference_id)
        logger.info(
            "momo_invoice_created",
            reference_id=mask(reference_id, 8),
            msisdn=mask(msisdn),
            amount=payload["amount"],
            currency=currency,
        )

    def _raise_for_create(self, response: httpx.Response, operation: str, reference_id: str) -> None:
        # 202 Accepted is the documented success; some sandboxes answer 201/200
        if response.status_code in (200, 201, 202):
            return
        body = response.text[:500]
        logger.error(
            "momo_create_failed",
            operation=operation,
            status_code=response.status_code,
            body=body,
            reference_id=mask(reference_id, 8),
        )
        raise MomoProviderError(
            f"MTN MoMo API error: {response.status_code} - {body}",
            status_code=response.status_code,
            body=body,
        )

    # ---------- status ----------

    async def get_request_to_pay_status(self, reference_id: str) -> ProviderTransaction:
        return await self._get_status(f"{REQUEST_TO_PAY_PATH}/{reference_id}", reference_id)

    async def get_invoice_status(self, reference_id: str) -> ProviderTransaction:
        return await self._get_status(f"{INVOICE_PATH}/{reference_id}", reference_id)

    async def _get_status(self, path: str, reference_id: str) -> ProviderTransaction:
        token = await self.get_access_token()
        response = await self._send("GET", path, headers=self._headers(token))

        if response.status_code == 404:
            logger.warning("momo_transaction_not_found", reference_id=mask(reference_id, 8))
            raise MomoTransactionNotFound(reference_id, body=response.text[:500])

        if response.status_code != 200:
            body = response.text[:500]
            logger.error(
                "momo_status_failed",
                status_code=response.status_code,
                body=body,
                reference_id=mask(reference_id, 8),
            )
            if response.status_code == 401:
                message = "Authentication failed. Please check MTN MoMo credentials."
            elif response.status_code == 403:
                message = "Access forbidden. Check subscription key and permissions."
            else:
                message = f"MTN MoMo API error: {response.status_code} - {body}"
            raise MomoProviderError(message, status_code=response.status_code, body=body)

        transaction = ProviderTransaction.from_payload(
            reference_id, self._json(response, "status")
        )
        logger.info(
            "momo_status_retrieved",
            reference_id=mask(reference_id, 8),
            status=transaction.raw_status,
            amount=transaction.amount,
            currency=transaction.currency,
        )
        return transaction

    # ---------- cancel / balance ----------

    async def cancel_invoice(self, reference_id: str, external_id: str) -> dict:
        token = await self.get_access_token()
        response = await self._send(
            "DELETE",
            f"{INVOICE_PATH}/{reference_id}",
            headers=self._headers(token, reference_id),
            json={"externalId": str(external_id)},
        )
        if response.status_code == 404:
            raise MomoTransactionNotFound(reference_id, body=response.text[:500])
        if response.status_code not in (200, 202, 204):
            body = response.text[:500]
            logger.error("momo_cancel_failed", status_code=response.status_code, body=body)
            raise MomoProviderError(
                f"CancelInvoice error {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )
        logger.info("momo_invoice_cancelled", reference_id=mask(reference_id, 8))
        return self._json(response, "cancel") if response.content else {}

    async def get_account_balance(self) -> dict:
        token = await self.get_access_token()
        response = await self._send("GET", BALANCE_PATH, headers=self._headers(token))
        if response.status_code != 200:
            body = response.text[:500]
            logger.error("momo_balance_failed", status_code=response.status_code, body=body)
            raise MomoProviderError(
                f"MTN MoMo API error: {response.status_code} - {body}",
                status_code=response.status_code,
                body=body,
            )
        return self._json(response, "balance")


# Module-level singleton, reuses TLS connections across calls
_momo_client: Optional[MomoClient] = None


def get_momo_client() -> MomoClient:
    """FastAPI dependency; tests override it with a client on a MockTransport."""
    global _momo_client
    if _momo_client is None or _momo_client.is_closed:
        _momo_client = MomoClient.from_settings(default_settings)
    return _momo_client


async def close_momo_client() -> None:
    global _momo_client
    if _momo_client is not None and not _momo_client.is_closed:
        await _momo_client.aclose()
    _momo_client = None
