"""
Renewal date arithmetic and RenewalScheduler behaviour against a mocked payment query.
"""
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from insurehub.services.renewal.scheduler import RenewalScheduler, add_months, compute_next_renewal, local_date
from insurehub.settings import settings


@pytest.mark.unit
@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2024, 1, 10), 1, date(2024, 2, 10)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 8, 31), 3, date(2024, 11, 30)),
        (date(2024, 11, 15), 3, date(2025, 2, 15)),
        (date(2024, 2, 29), 12, date(2025, 2, 28)),
    ],
)
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


@pytest.mark.unit
def test_third_monthly_payment_anchored_on_first():
    request = SimpleNamespace(billing_cycle="monthly")
    assert compute_next_renewal(request, "monthly", 3, date(2024, 1, 10)) == date(2024, 4, 10)


@pytest.mark.unit
@pytest.mark.parametrize(
    "cycle, expected",
    [
        ("monthly", date(2024, 2, 10)),
        ("quarterly", date(2024, 4, 10)),
        ("half_yearly", date(2024, 7, 10)),
        ("yearly", date(2025, 1, 10)),
    ],
)
def test_cycle_lengths(cycle, expected):
    assert compute_next_renewal(None, cycle, 1, datetime(2024, 1, 10, 23, 59)) == expected


@pytest.mark.unit
def test_cycle_falls_back_to_request_billing_cycle():
    request = SimpleNamespace(billing_cycle="quarterly")
    assert compute_next_renewal(request, None, 2, date(2024, 1, 10)) == date(2024, 7, 10)


@pytest.mark.unit
def test_zero_verified_payments_rejected():
    with pytest.raises(ValueError):
        compute_next_renewal(None, "monthly", 0, date(2024, 1, 10))


def _buy_request(**overrides):
    values = {
        "id": 1,
        "billing_cycle": "monthly",
        "next_renewal_date": None,
        "renewal_status": None,
        "renewal_reminder_sent_at": datetime(2024, 1, 5),
        "renewal_grace_reminders_sent": 1,
        "renewal_grace_last_sent_at": datetime(2024, 1, 6),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.unit
def test_schedule_activates_future_date_and_resets_reminders():
    payments = Mock()
    payments.count_verified.return_value = 2
    payments.first_verified_at.return_value = datetime(2024, 1, 10, 9, 0)
    buy_request = _buy_request(renewal_status="due")

    next_date = RenewalScheduler(payments).schedule(buy_request, today=date(2024, 2, 12))

    assert next_date == date(2024, 3, 10)
    assert buy_request.next_renewal_date == date(2024, 3, 10)
    assert buy_request.renewal_status == "active"
    assert buy_request.renewal_reminder_sent_at is None
    assert buy_request.renewal_grace_reminders_sent == 0
    assert buy_request.renewal_grace_last_sent_at is None


@pytest.mark.unit
def test_schedule_in_past_does_not_activate():
    payments = Mock()
    payments.count_verified.return_value = 1
    payments.first_verified_at.return_value = datetime(2024, 1, 10)
    buy_request = _buy_request(renewal_status="due")

    RenewalScheduler(payments).schedule(buy_request, today=date(2024, 3, 1))

    assert buy_request.next_renewal_date == date(2024, 2, 10)
    assert buy_request.renewal_status == "due"
    assert buy_request.renewal_grace_reminders_sent == 1


@pytest.mark.unit
def test_schedule_without_verified_payment_is_noop():
    payments = Mock()
    payments.count_verified.return_value = 0
    payments.first_verified_at.return_value = None
    buy_request = _buy_request()

    assert RenewalScheduler(payments).schedule(buy_request, today=date(2024, 1, 1)) is None
    assert buy_request.next_renewal_date is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "anchor, expected",
    [
        # 20:00 UTC is 01:45 the next day in Kathmandu
        (datetime(2024, 1, 10, 20, 0, tzinfo=timezone.utc), date(2024, 2, 11)),
        (datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc), date(2024, 2, 10)),
        (datetime(2024, 1, 10, 20, 0), date(2024, 2, 10)),
    ],
)
def test_anchor_date_taken_in_app_timezone(monkeypatch, anchor, expected):
    monkeypatch.setattr(settings, "app_timezone", "Asia/Kathmandu")
    assert compute_next_renewal(None, "monthly", 1, anchor) == expected


@pytest.mark.unit
def test_local_date_passes_plain_dates_through(monkeypatch):
    monkeypatch.setattr(settings, "app_timezone", "Asia/Kathmandu")
    assert local_date(date(2024, 1, 10)) == date(2024, 1, 10)
    assert local_date(datetime(2024, 1, 10, 18, 15, tzinfo=timezone.utc)) == date(2024, 1, 11)


@pytest.mark.unit
def test_schedule_uses_local_anchor_date(monkeypatch):
    monkeypatch.setattr(settings, "app_timezone", "Asia/Kathmandu")
    payments = Mock()
    payments.count_verified.return_value = 1
    payments.first_verified_at.return_value = datetime(2024, 1, 31, 19, 0, tzinfo=timezone.utc)
    buy_request = _buy_request()

    next_date = RenewalScheduler(payments).schedule(buy_request, today=date(2024, 2, 1))

    # local anchor is Feb 1, not Jan 31
    assert next_date == date(2024, 3, 1)
    assert buy_request.renewal_status == "active"
