"""
Provider status → local payment status.

The provider speaks two vocabularies (request-to-pay and invoice); both
are parsed into the closed ``ProviderStatus`` enum, and
``map_provider_status`` is total over it. Anything the provider sends that
we do not recognise becomes ``ProviderStatus.UNKNOWN`` and maps to
``pending`` with ``unexpected=True`` so the caller can log it.

The persisted ``payments.status`` column is the single source of truth
for expiry: ``expired`` is written here at reconciliation time and
``status_display`` never recomputes it from ``due_date``.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional


class ProviderStatus(str, Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    ONGOING = "ONGOING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ProviderStatus":
        if not raw:
            return cls.UNKNOWN
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in _PROVIDER_TERMINAL


_PROVIDER_OPEN = {ProviderStatus.CREATED, ProviderStatus.PENDING, ProviderStatus.ONGOING}
_PROVIDER_FAILED = {ProviderStatus.FAILED, ProviderStatus.REJECTED, ProviderStatus.CANCELLED}
_PROVIDER_TERMINAL = _PROVIDER_FAILED | {ProviderStatus.SUCCESSFUL}


class LocalStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LocalStatus.PAID, LocalStatus.FAILED, LocalStatus.CANCELLED})
OPEN_STATUSES = frozenset(set(LocalStatus) - TERMINAL_STATUSES)


@dataclass
class StatusUpdate:
    provider_status: ProviderStatus
    local_status: LocalStatus
    paid_date: Optional[date] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    unexpected: bool = False

    def as_row_values(self) -> dict:
        """Column values for the payments row. Error fields only when present."""
        values: dict[str, Any] = {"status": self.local_status.value}
        if self.paid_date is not None:
            values["paid_date"] = self.paid_date
        if self.error_code is not None:
            values["momo_error_code"] = self.error_code
        if self.error_message is not None:
            values["momo_error_message"] = self.error_message
        return values


def extract_reason(reason: Any) -> tuple[Optional[str], Optional[str]]:
    """
    The provider reports failure reasons either as ``{"code", "message"}``
    or as a bare code string, depending on the endpoint family.
    """
    if reason is None:
        return None, None
    if isinstance(reason, dict):
        code = reason.get("code")
        message = reason.get("message")
        return (str(code) if code is not None else None,
                str(message) if message is not None else None)
    return str(reason), None


def map_provider_status(
    status: ProviderStatus,
    due_date: Optional[date],
    today: date,
    reason: Any = None,
) -> StatusUpdate:
    if status in _PROVIDER_OPEN:
        expired = due_date is not None and today > due_date
        return StatusUpdate(
            provider_status=status,
            local_status=LocalStatus.EXPIRED if expired else LocalStatus.PENDING,
        )

    if status is ProviderStatus.SUCCESSFUL:
        return StatusUpdate(
            provider_status=status,
            local_status=LocalStatus.PAID,
            paid_date=today,
        )

    if status in _PROVIDER_FAILED:
        code, message = extract_reason(reason)
        return StatusUpdate(
            provider_status=status,
            local_status=LocalStatus.FAILED,
            error_code=code,
            error_message=message,
        )

    return StatusUpdate(
        provider_status=ProviderStatus.UNKNOWN,
        local_status=LocalStatus.PENDING,
        unexpected=True,
    )


# ---------- admin display ----------

@dataclass
class StatusDisplay:
    display_text: str
    badge_variant: str
    is_expired: bool = False


def status_display(status: str, error_message: Optional[str] = None) -> StatusDisplay:
    """Badge text for the admin tables, from the persisted status only."""
    try:
        local = LocalStatus(status)
    except ValueError:
        return StatusDisplay("Processing", "secondary")

    if local is LocalStatus.PAID:
        return StatusDisplay("Paid", "default")
    if local is LocalStatus.FAILED:
        return StatusDisplay(f"Failed: {error_message or 'Payment failed'}", "destructive")
    if local is LocalStatus.CANCELLED:
        return StatusDisplay("Cancelled", "destructive")
    if local is LocalStatus.EXPIRED:
        return StatusDisplay("Expired", "outline", is_expired=True)
    if local is LocalStatus.OVERDUE:
        return StatusDisplay("Overdue", "destructive")
    return StatusDisplay("Awaiting payment", "secondary")
