"""
Periodic renewal status sweep (run from the CLI, typically once a day).

    active --(renewal date reached)--> due --(grace window passed)--> expired

Side notices:
  * one reminder while the renewal date is within `renewal_reminder_days`
  * one grace reminder `renewal_grace_reminder_day` days after the due date
  * one expiry notice

Every transition and notice is claimed with a conditional UPDATE and committed before the
notification goes out, so re-running the sweep on the same day sends nothing twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from insurehub.models import BuyRequest
from insurehub.services.notifications import POLICY_EXPIRED, RENEWAL_REMINDER, NotificationDispatcher
from insurehub.services.renewal.scheduler import local_today
from insurehub.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    reminded: int = 0
    due: int = 0
    grace_reminded: int = 0
    expired: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "reminded": self.reminded,
            "due": self.due,
            "grace_reminded": self.grace_reminded,
            "expired": self.expired,
        }


class RenewalSweeper:
    def __init__(
        self,
        session: Session,
        dispatcher: NotificationDispatcher,
        reminder_days: int | None = None,
        grace_days: int | None = None,
        grace_reminder_day: int | None = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.reminder_days = reminder_days if reminder_days is not None else settings.renewal_reminder_days
        self.grace_days = grace_days if grace_days is not None else settings.renewal_grace_days
        self.grace_reminder_day = (
            grace_reminder_day if grace_reminder_day is not None else settings.renewal_grace_reminder_day
        )

    def run(self, today: date | None = None) -> SweepResult:
        today = today or local_today()
        now = datetime.now(timezone.utc)
        result = SweepResult()

        logger.info(f"[RENEWAL] Sweep started for {today}")
        result.reminded = self._send_upcoming_reminders(today, now)
        result.due = self._mark_due(today)
        result.expired = self._expire(today)
        result.grace_reminded = self._send_grace_reminders(today, now)
        # rows loaded above were updated behind the identity map
        self.session.expire_all()
        logger.info(f"[RENEWAL] Sweep finished: {result.as_dict()}")
        return result

    def _candidates(self, *criteria) -> list[BuyRequest]:
        stmt = (
            select(BuyRequest)
            .options(selectinload(BuyRequest.policy), selectinload(BuyRequest.client))
            .where(
                BuyRequest.deleted_at.is_(None),
                BuyRequest.next_renewal_date.is_not(None),
                *criteria,
            )
            .order_by(BuyRequest.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def _claim(self, buy_request_id: int, *guards, **values) -> bool:
        stmt = (
            update(BuyRequest)
            .where(BuyRequest.id == buy_request_id, *guards)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        won = (self.session.execute(stmt).rowcount or 0) == 1
        self.session.commit()
        return won

    def _notify(self, buy_request: BuyRequest, template_id: str, **extra) -> None:
        context = {
            "policy_name": buy_request.policy.policy_name if buy_request.policy else buy_request.policy_id,
            "next_renewal_date": buy_request.next_renewal_date,
            "cycle_amount": buy_request.cycle_amount,
            "billing_cycle": buy_request.billing_cycle,
            **extra,
        }
        email = buy_request.email or (buy_request.client.email if buy_request.client else None)
        self.dispatcher.dispatch(buy_request.user_id, template_id, context, email=email)

    def _send_upcoming_reminders(self, today: date, now: datetime) -> int:
        window_end = today + timedelta(days=self.reminder_days)
        rows = self._candidates(
            BuyRequest.renewal_status == "active",
            BuyRequest.renewal_reminder_sent_at.is_(None),
            BuyRequest.next_renewal_date >= today,
            BuyRequest.next_renewal_date <= window_end,
        )
        sent = 0
        for row in rows:
            if not self._claim(row.id, BuyRequest.renewal_reminder_sent_at.is_(None), renewal_reminder_sent_at=now):
                continue
            self._notify(row, RENEWAL_REMINDER)
            sent += 1
        return sent

    def _mark_due(self, today: date) -> int:
        rows = self._candidates(
            BuyRequest.renewal_status == "active",
            BuyRequest.next_renewal_date <= today,
        )
        flipped = 0
        for row in rows:
            won = self._claim(
                row.id,
                BuyRequest.renewal_status == "active",
                renewal_status="due",
                renewal_grace_reminders_sent=0,
                renewal_grace_last_sent_at=None,
            )
            if won:
                logger.info(f"[RENEWAL] Buy request {row.id} is due (renewal date {row.next_renewal_date})")
                flipped += 1
        return flipped

    def _expire(self, today: date) -> int:
        cutoff = today - timedelta(days=self.grace_days)
        rows = self._candidates(
            BuyRequest.renewal_status == "due",
            BuyRequest.next_renewal_date < cutoff,
        )
        expired = 0
        for row in rows:
            if not self._claim(row.id, BuyRequest.renewal_status == "due", renewal_status="expired"):
                continue
            logger.info(f"[RENEWAL] Buy request {row.id} expired (renewal date {row.next_renewal_date})")
            self._notify(row, POLICY_EXPIRED, grace_days=self.grace_days)
            expired += 1
        return expired

    def _send_grace_reminders(self, today: date, now: datetime) -> int:
        reminder_on = today - timedelta(days=self.grace_reminder_day)
        rows = self._candidates(
            BuyRequest.renewal_status == "due",
            BuyRequest.renewal_grace_reminders_sent == 0,
            BuyRequest.next_renewal_date <= reminder_on,
        )
        sent = 0
        for row in rows:
            won = self._claim(
                row.id,
                BuyRequest.renewal_status == "due",
                BuyRequest.renewal_grace_reminders_sent == 0,
                renewal_grace_reminders_sent=1,
                renewal_grace_last_sent_at=now,
            )
            if not won:
                continue
            self._notify(row, RENEWAL_REMINDER, grace_days=self.grace_days)
            sent += 1
        return sent
