"""
Domain errors.

Every error carries a stable ``code`` and a human-readable ``message``;
main.py turns them into ``{"error": {"code": ..., "message": ...}}``.
"""

from typing import Optional


class PropDeskError(Exception):
    code = "PROPDESK_ERROR"
    http_status = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class PaymentValidationError(PropDeskError):
    """Rejected locally, before any call to the provider."""

    code = "PAYMENT_VALIDATION_ERROR"
    http_status = 400


class PaymentNotFoundError(PropDeskError):
    code = "PAYMENT_NOT_FOUND"
    http_status = 404


class MomoError(PropDeskError):
    code = "MOMO_ERROR"
    http_status = 502

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MomoConfigurationError(MomoError):
    code = "MOMO_NOT_CONFIGURED"
    http_status = 503


class MomoTokenError(MomoError):
    code = "MOMO_TOKEN_ERROR"


class MomoProviderError(MomoError):
    code = "MOMO_PROVIDER_ERROR"


class MomoTransactionNotFound(MomoProviderError):
    code = "MOMO_TRANSACTION_NOT_FOUND"
    http_status = 404

    def __init__(self, reference_id: str, body: str = ""):
        super().__init__(
            "Transaction not found. The reference ID may be invalid or the "
            "transaction may not exist.",
            status_code=404,
            body=body,
        )
        self.reference_id = reference_id


class MomoTimeoutError(MomoError):
    code = "MOMO_TIMEOUT"
    http_status = 504
