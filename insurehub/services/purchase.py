import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from insurehub.errors import InvalidTransition, NotFound
from insurehub.models import BuyRequest, Client, Policy
from insurehub.services.pricing.billing import cycle_amount_for, normalize_billing_cycle
from insurehub.services.pricing.calculator import PremiumCalculator
from insurehub.services.pricing.profile import build_buyer_profile

logger = logging.getLogger(__name__)


class PurchaseService:
    """
    Buy request lifecycle outside of payments: creation from a personalized quote,
    admin cycle amount edits and soft delete.
    """

    def __init__(self, session: Session, calculator: PremiumCalculator | None = None):
        self.session = session
        self.calculator = calculator or PremiumCalculator()

    def get(self, buy_request_id: int, include_deleted: bool = False) -> BuyRequest:
        buy_request = self.session.get(BuyRequest, buy_request_id)
        if buy_request is None or (buy_request.deleted_at is not None and not include_deleted):
            raise NotFound(f"Buy request {buy_request_id} not found")
        return buy_request

    def _existing(self, user_id: int, policy_id: int) -> BuyRequest | None:
        stmt = select(BuyRequest).where(BuyRequest.user_id == user_id, BuyRequest.policy_id == policy_id)
        return self.session.execute(stmt).scalars().first()

    def create_buy_request(
        self,
        client: Client,
        policy: Policy,
        billing_cycle: str | None = None,
        email: str | None = None,
        today: date | None = None,
    ) -> tuple[BuyRequest, bool]:
        """
        Returns (buy_request, created). A buyer holds at most one buy request per policy;
        asking again returns the existing one unchanged.
        """
        existing = self._existing(client.id, policy.id)
        if existing is not None:
            if existing.deleted_at is not None:
                raise InvalidTransition(f"Buy request {existing.id} for policy {policy.id} was removed")
            logger.info(f"[Purchase] User {client.id} already holds buy request {existing.id} for policy {policy.id}")
            return existing, False

        if not policy.is_active:
            raise InvalidTransition(f"Policy {policy.id} is not on sale")

        cycle = normalize_billing_cycle(billing_cycle)
        profile = build_buyer_profile(client, today)
        premium = self.calculator.price(policy, profile)  # IneligibleRisk propagates
        buy_request = BuyRequest(
            user_id=client.id,
            policy_id=policy.id,
            email=email or client.email,
            status="pending",
            billing_cycle=cycle,
            calculated_premium=premium,
            cycle_amount=cycle_amount_for(premium, cycle),
            renewal_grace_reminders_sent=0,
        )
        self.session.add(buy_request)
        try:
            self.session.commit()
        except IntegrityError:
            # lost the race on (user_id, policy_id)
            self.session.rollback()
            existing = self._existing(client.id, policy.id)
            if existing is None:
                raise
            return existing, False

        logger.info(
            f"[Purchase] Buy request {buy_request.id} created: user={client.id} policy={policy.id} "
            f"premium={premium} cycle={cycle} cycle_amount={buy_request.cycle_amount}"
        )
        return buy_request, True

    def set_cycle_amount(self, buy_request_id: int, amount, changed_by: str | None = None) -> BuyRequest:
        try:
            value = Decimal(str(amount)).quantize(Decimal("0.01"))
        except InvalidOperation as e:
            raise ValueError(f"Invalid cycle amount: {amount}") from e
        if value <= 0:
            raise ValueError("cycle amount must be greater than 0")

        buy_request = self.get(buy_request_id)
        previous = buy_request.cycle_amount
        buy_request.cycle_amount = value
        self.session.commit()
        logger.warning(
            f"[Purchase] Cycle amount of buy request {buy_request_id} changed {previous} -> {value} "
            f"by {changed_by or 'admin'}"
        )
        return buy_request

    def soft_delete(self, buy_request_id: int) -> BuyRequest:
        buy_request = self.get(buy_request_id)
        buy_request.deleted_at = datetime.now(timezone.utc)
        self.session.commit()
        logger.info(f"[Purchase] Buy request {buy_request_id} removed")
        return buy_request
