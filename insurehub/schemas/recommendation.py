from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class MatchReasonOut(BaseModel):
    dimension: str
    text: str


class RankedPolicyOut(BaseModel):
    position: int
    policy_id: int
    policy_name: str
    company_name: Optional[str] = None
    insurance_type: str
    match_score: float
    personalized_premium: Decimal
    approval_likelihood: str
    reasons: List[MatchReasonOut] = []


class RecommendationListOut(BaseModel):
    variant: str
    total_candidates: int
    items: List[RankedPolicyOut]
