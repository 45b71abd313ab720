"""
Recommendation impression telemetry.

Write-only measurement data: one row per policy shown, later updated by click / dwell /
purchase events. Nothing here is read back by the ranker.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from insurehub.db import SessionLocal
from insurehub.models import RecommendationImpression

logger = logging.getLogger(__name__)

CLICK_WINDOW = timedelta(hours=24)
PURCHASE_WINDOW = timedelta(days=7)


class ImpressionRecorder:
    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        user_id: int,
        shown: Iterable[tuple[int, float]],
        variant: str,
        shown_at: datetime | None = None,
    ) -> list[RecommendationImpression]:
        """
        Persist one impression per (policy_id, match_score) in display order; positions are 1-based.
        """
        shown_at = shown_at or datetime.now(timezone.utc)
        rows = [
            RecommendationImpression(
                user_id=user_id,
                policy_id=policy_id,
                position=position,
                match_score=float(match_score),
                variant=variant,
                clicked=False,
                purchased=False,
                shown_at=shown_at,
            )
            for position, (policy_id, match_score) in enumerate(shown, start=1)
        ]
        self.session.add_all(rows)
        self.session.commit()
        return rows

    def _update_recent(self, user_id: int, policy_id: int, window: timedelta, now: datetime | None, **values) -> int:
        now = now or datetime.now(timezone.utc)
        stmt = (
            update(RecommendationImpression)
            .where(
                RecommendationImpression.user_id == user_id,
                RecommendationImpression.policy_id == policy_id,
                RecommendationImpression.shown_at > now - window,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        count = self.session.execute(stmt).rowcount or 0
        self.session.commit()
        return count

    def mark_clicked(self, user_id: int, policy_id: int, now: datetime | None = None) -> int:
        return self._update_recent(user_id, policy_id, CLICK_WINDOW, now, clicked=True)

    def record_time_spent(self, user_id: int, policy_id: int, seconds: int, now: datetime | None = None) -> int:
        if seconds < 0:
            raise ValueError("seconds must be 0 or greater")
        return self._update_recent(user_id, policy_id, CLICK_WINDOW, now, time_spent_seconds=seconds)

    def mark_purchased(self, user_id: int, policy_id: int, now: datetime | None = None) -> int:
        return self._update_recent(user_id, policy_id, PURCHASE_WINDOW, now, purchased=True)


def record_impressions_task(user_id: int, shown: list[tuple[int, float]], variant: str) -> None:
    """
    Background entry point: runs after the ranking response is sent, in its own session.
    Failures are logged and dropped.
    """
    try:
        with SessionLocal() as session:
            ImpressionRecorder(session).record(user_id, shown, variant)
        logger.info(f"[Impressions] Recorded {len(shown)} impressions for user {user_id} (variant={variant})")
    except Exception as e:
        logger.error(f"[Impressions] Failed to record impressions for user {user_id}: {e}", exc_info=True)
