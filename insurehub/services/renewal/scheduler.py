"""
Renewal scheduling.

next_renewal_date = first verified payment + cycle length * number of verified payments.

The anchor is always the first verified payment on the buy request, so a late
verification never shifts the schedule. This module only ever sets renewal_status to
"active"; the active -> due -> expired transitions belong to the renewal sweep.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from insurehub.services.pricing.billing import CYCLE_MONTHS, normalize_billing_cycle
from insurehub.settings import settings

logger = logging.getLogger(__name__)


class VerifiedPaymentQuery(Protocol):
    def count_verified(self, buy_request_id: int) -> int: ...

    def first_verified_at(self, buy_request_id: int) -> datetime | None: ...


def local_today() -> date:
    return datetime.now(ZoneInfo(settings.app_timezone)).date()


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamped to the last day of the target month (Jan 31 + 1 -> Feb 28/29)."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_next_renewal(
    purchase_request: Any,
    billing_cycle: str | None,
    verified_payment_count: int,
    first_verified_payment_date: date | datetime,
) -> date:
    if verified_payment_count < 1:
        raise ValueError("at least one verified payment is required to schedule a renewal")

    cycle = normalize_billing_cycle(billing_cycle or getattr(purchase_request, "billing_cycle", None))
    return add_months(local_date(first_verified_payment_date), CYCLE_MONTHS[cycle] * verified_payment_count)


def local_date(value: date | datetime) -> date:
    """Calendar date in the app timezone. Naive datetimes are taken as already local."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is not None:
        value = value.astimezone(ZoneInfo(settings.app_timezone))
    return value.date()


class RenewalScheduler:
    def __init__(self, payments: VerifiedPaymentQuery):
        self.payments = payments

    def schedule(self, buy_request: Any, today: date | None = None) -> date | None:
        """
        Recompute next_renewal_date for a buy request from its verified payments and
        mark it active when that date is still ahead. The caller commits.
        """
        count = self.payments.count_verified(buy_request.id)
        anchor = self.payments.first_verified_at(buy_request.id)
        if count < 1 or anchor is None:
            logger.info(f"[RENEWAL] Buy request {buy_request.id} has no verified payment yet, nothing to schedule")
            return None

        next_date = compute_next_renewal(buy_request, buy_request.billing_cycle, count, anchor)
        buy_request.next_renewal_date = next_date

        today = today or local_today()
        if next_date > today:
            buy_request.renewal_status = "active"
            # a fresh cycle gets its own reminders
            buy_request.renewal_reminder_sent_at = None
            buy_request.renewal_grace_reminders_sent = 0
            buy_request.renewal_grace_last_sent_at = None
        else:
            logger.warning(
                f"[RENEWAL] Buy request {buy_request.id}: next renewal {next_date} is not after {today}, "
                f"status left as {buy_request.renewal_status}"
            )

        logger.info(
            f"[RENEWAL] Buy request {buy_request.id}: {count} verified payment(s) from {local_date(anchor)}, "
            f"next renewal {next_date} ({buy_request.billing_cycle})"
        )
        return next_date
