"""
Unit tests for propdesk/services/reconciliation.py

Pure functions, no session or network involved.
"""

from datetime import date

import pytest

from propdesk.services.reconciliation import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    LocalStatus,
    ProviderStatus,
    extract_reason,
    map_provider_status,
    status_display,
)

TODAY = date(2026, 3, 15)


# ---------------------------------------------------------------------------
# ProviderStatus.parse
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("SUCCESSFUL", ProviderStatus.SUCCESSFUL),
        ("successful", ProviderStatus.SUCCESSFUL),
        (" pending ", ProviderStatus.PENDING),
        ("CREATED", ProviderStatus.CREATED),
        ("REJECTED", ProviderStatus.REJECTED),
        ("SOMETHING_NEW", ProviderStatus.UNKNOWN),
        ("", ProviderStatus.UNKNOWN),
        (None, ProviderStatus.UNKNOWN),
    ],
)
def test_parse_provider_status(raw, expected):
    assert ProviderStatus.parse(raw) is expected


def test_terminal_sets_partition_local_statuses():
    assert TERMINAL_STATUSES | OPEN_STATUSES == set(LocalStatus)
    assert not TERMINAL_STATUSES & OPEN_STATUSES
    assert LocalStatus.PAID.is_terminal
    assert not LocalStatus.EXPIRED.is_terminal


# ---------------------------------------------------------------------------
# map_provider_status
# ---------------------------------------------------------------------------


def test_successful_maps_to_paid_with_today():
    update = map_provider_status(ProviderStatus.SUCCESSFUL, date(2026, 3, 1), TODAY)
    assert update.local_status is LocalStatus.PAID
    assert update.paid_date == TODAY
    assert update.error_code is None


@pytest.mark.parametrize(
    "status", [ProviderStatus.FAILED, ProviderStatus.REJECTED, ProviderStatus.CANCELLED]
)
def test_failure_statuses_map_to_failed_with_reason(status):
    update = map_provider_status(
        status,
        date(2026, 4, 1),
        TODAY,
        reason={"code": "APPROVAL_REJECTED", "message": "Payer declined"},
    )
    assert update.local_status is LocalStatus.FAILED
    assert update.paid_date is None
    assert update.error_code == "APPROVAL_REJECTED"
    assert update.error_message == "Payer declined"


def test_failed_without_reason_leaves_error_fields_out_of_row():
    update = map_provider_status(ProviderStatus.FAILED, None, TODAY)
    values = update.as_row_values()
    assert values == {"status": "failed"}


@pytest.mark.parametrize(
    "status", [ProviderStatus.CREATED, ProviderStatus.PENDING, ProviderStatus.ONGOING]
)
def test_open_status_before_due_date_stays_pending(status):
    update = map_provider_status(status, date(2026, 3, 20), TODAY)
    assert update.local_status is LocalStatus.PENDING
    assert update.unexpected is False


def test_open_status_on_due_date_is_not_expired():
    update = map_provider_status(ProviderStatus.PENDING, TODAY, TODAY)
    assert update.local_status is LocalStatus.PENDING


def test_open_status_past_due_date_is_expired():
    update = map_provider_status(ProviderStatus.PENDING, date(2026, 3, 14), TODAY)
    assert update.local_status is LocalStatus.EXPIRED
    assert update.paid_date is None


def test_open_status_without_due_date_never_expires():
    update = map_provider_status(ProviderStatus.ONGOING, None, TODAY)
    assert update.local_status is LocalStatus.PENDING


def test_unknown_status_maps_to_pending_and_is_flagged():
    update = map_provider_status(ProviderStatus.parse("WAITING_FOR_GODOT"), None, TODAY)
    assert update.local_status is LocalStatus.PENDING
    assert update.provider_status is ProviderStatus.UNKNOWN
    assert update.unexpected is True


def test_mapping_is_total():
    for status in ProviderStatus:
        update = map_provider_status(status, date(2026, 1, 1), TODAY)
        assert update.local_status in set(LocalStatus)


# ---------------------------------------------------------------------------
# extract_reason
# ---------------------------------------------------------------------------


def test_extract_reason_from_dict():
    assert extract_reason({"code": "NOT_ENOUGH_FUNDS", "message": "Low balance"}) == (
        "NOT_ENOUGH_FUNDS",
        "Low balance",
    )


def test_extract_reason_from_bare_string():
    assert extract_reason("PAYER_NOT_FOUND") == ("PAYER_NOT_FOUND", None)


def test_extract_reason_none():
    assert extract_reason(None) == (None, None)


# ---------------------------------------------------------------------------
# status_display
# ---------------------------------------------------------------------------


def test_display_paid():
    display = status_display("paid")
    assert display.display_text == "Paid"
    assert display.is_expired is False


def test_display_failed_includes_reason():
    assert status_display("failed", "Payer declined").display_text == "Failed: Payer declined"
    assert status_display("failed").display_text == "Failed: Payment failed"


def test_display_expired_is_outline():
    display = status_display("expired")
    assert display.display_text == "Expired"
    assert display.badge_variant == "outline"
    assert display.is_expired is True


def test_display_pending_does_not_recompute_expiry():
    """Only the persisted status drives the badge."""
    display = status_display("pending")
    assert display.display_text == "Awaiting payment"
    assert display.is_expired is False


def test_display_unknown_status_is_processing():
    assert status_display("weird").display_text == "Processing"
