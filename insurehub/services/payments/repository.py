from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from insurehub.models import Payment
from insurehub.services.payments.gateway import FAILURE_STATUSES


class PaymentRepository:
    """
    Payment queries and the guarded flag updates the verification state machine relies on.
    Every mark_* method is a single conditional UPDATE; it returns True only for the caller
    that actually flipped the flag.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, payment_id: int) -> Payment | None:
        return self.session.get(Payment, payment_id)

    def _anchor_time(self):
        return func.coalesce(Payment.verified_at, Payment.paid_at, Payment.created_at)

    def _not_failed(self):
        # failed is terminal: no verification and no status overwrite once a failure is recorded
        return (
            Payment.failed_notified.is_(False),
            func.lower(func.trim(Payment.status)).notin_(sorted(FAILURE_STATUSES)),
        )

    def count_verified(self, buy_request_id: int) -> int:
        stmt = select(func.count(Payment.id)).where(
            Payment.buy_request_id == buy_request_id,
            Payment.is_verified.is_(True),
        )
        return int(self.session.execute(stmt).scalar_one())

    def first_verified_at(self, buy_request_id: int) -> datetime | None:
        """Anchor instant of the renewal schedule, always timezone-aware (stored values are UTC)."""
        stmt = (
            select(Payment)
            .where(Payment.buy_request_id == buy_request_id, Payment.is_verified.is_(True))
            .order_by(self._anchor_time().asc(), Payment.id.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        first = self.session.execute(stmt).scalars().first()
        if first is None:
            return None
        anchor = first.verified_at or first.paid_at or first.created_at
        if anchor is not None and anchor.tzinfo is None:
            # SQLite drops the offset
            anchor = anchor.replace(tzinfo=timezone.utc)
        return anchor

    def has_other_verified(self, buy_request_id: int, payment_id: int) -> bool:
        stmt = select(Payment.id).where(
            Payment.buy_request_id == buy_request_id,
            Payment.is_verified.is_(True),
            Payment.id != payment_id,
        ).limit(1)
        return self.session.execute(stmt).first() is not None

    def mark_verified(self, payment_id: int, now: datetime) -> bool:
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.is_verified.is_(False), *self._not_failed())
            .values(is_verified=True, verified_at=now, paid_at=func.coalesce(Payment.paid_at, now))
            .execution_options(synchronize_session=False)
        )
        return (self.session.execute(stmt).rowcount or 0) == 1

    def mark_failure_notified(self, payment_id: int, now: datetime) -> bool:
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.failed_notified.is_(False), Payment.is_verified.is_(False))
            .values(failed_notified=True, failed_notified_at=now)
            .execution_options(synchronize_session=False)
        )
        return (self.session.execute(stmt).rowcount or 0) == 1

    def record_gateway_status(self, payment_id: int, status: str, meta: dict) -> bool:
        """Store the raw gateway status/meta unless the payment is already verified or failed."""
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.is_verified.is_(False), *self._not_failed())
            .values(status=status, meta=meta)
            .execution_options(synchronize_session=False)
        )
        return (self.session.execute(stmt).rowcount or 0) == 1
