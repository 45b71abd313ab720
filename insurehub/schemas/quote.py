from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class PricingStepOut(BaseModel):
    step: str
    multiplier: Decimal
    premium: Decimal


class QuoteOut(BaseModel):
    policy_id: int
    currency: str
    mode: str  # "personalized" or "range"
    personalized_premium: Optional[Decimal] = None
    premium_min: Optional[Decimal] = None
    premium_max: Optional[Decimal] = None
    base_premium: Decimal
    breakdown: List[PricingStepOut] = []
