import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insurehub.api.errors import to_http_exception
from insurehub.db import get_session
from insurehub.errors import InsureHubError
from insurehub.schemas.quote import PricingStepOut, QuoteOut
from insurehub.services.catalog import get_client, get_policy
from insurehub.services.pricing.calculator import PremiumCalculator
from insurehub.services.pricing.profile import build_buyer_profile
from insurehub.settings import settings

router = APIRouter()
logger = logging.getLogger(__name__)


class QuoteIn(BaseModel):
    policy_id: int
    client_id: Optional[int] = Field(default=None, description="Omit for a guest range quote")


@router.post("", response_model=QuoteOut)
def create_quote(payload: QuoteIn, session: Session = Depends(get_session)):
    """
    Personalized premium with a per-step breakdown, or the [base, base x N] range for guests.
    """
    calculator = PremiumCalculator()
    try:
        policy = get_policy(session, payload.policy_id)
        if payload.client_id is None:
            premium_range = calculator.quote_range(policy)
            return QuoteOut(
                policy_id=policy.id,
                currency=settings.currency,
                mode="range",
                premium_min=premium_range.premium_min,
                premium_max=premium_range.premium_max,
                base_premium=policy.base_premium,
            )

        client = get_client(session, payload.client_id)
        breakdown = calculator.quote(policy, build_buyer_profile(client))
    except InsureHubError as e:
        raise to_http_exception(e)

    logger.info(f"[Quote] Client {payload.client_id} policy {policy.id}: {breakdown.personalized_premium}")
    return QuoteOut(
        policy_id=policy.id,
        currency=settings.currency,
        mode="personalized",
        personalized_premium=breakdown.personalized_premium,
        base_premium=breakdown.base_premium,
        breakdown=[PricingStepOut(step=s.step, multiplier=s.multiplier, premium=s.premium) for s in breakdown.steps],
    )
