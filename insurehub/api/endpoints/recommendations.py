"""
Recommendations API

Ranked policy list for a buyer (or a guest), plus impression feedback tracking.
"""
import logging
from decimal import Decimal
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insurehub.api.errors import to_http_exception
from insurehub.db import get_session
from insurehub.errors import InsureHubError
from insurehub.schemas.recommendation import MatchReasonOut, RankedPolicyOut, RecommendationListOut
from insurehub.services.catalog import active_policies, get_client
from insurehub.services.matching.experiment import assign_variant
from insurehub.services.matching.impressions import ImpressionRecorder, record_impressions_task
from insurehub.services.matching.ranker import PolicyRanker, RankingPreferences, diverse_selection
from insurehub.services.pricing.profile import build_buyer_profile, guest_profile

router = APIRouter()
logger = logging.getLogger(__name__)


# ============================================================================
# Request Models
# ============================================================================

class RecommendationIn(BaseModel):
    client_id: Optional[int] = Field(default=None, description="Omit for guests")
    policy_ids: Optional[list[int]] = Field(default=None, description="Restrict ranking to these policies")
    insurance_type: Optional[str] = None
    max_premium: Optional[Decimal] = Field(default=None, gt=0)
    weights: Optional[Dict[str, float]] = Field(default=None, description="Per-dimension weight overrides")
    limit: Optional[int] = Field(default=None, ge=1, le=50)
    diverse: bool = True


class ClickIn(BaseModel):
    client_id: int
    policy_id: int


class TimeSpentIn(BaseModel):
    client_id: int
    policy_id: int
    seconds: int = Field(..., ge=0)


# ============================================================================
# Endpoints
# ============================================================================

@router.post("", response_model=RecommendationListOut)
def recommend_policies(
    payload: RecommendationIn,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    """
    Rank candidate policies for the caller. Impressions are written after the response
    is sent; guests are not tracked.
    """
    if payload.weights and any(w < 0 for w in payload.weights.values()):
        raise HTTPException(status_code=400, detail="weights must be 0 or greater")

    try:
        profile = build_buyer_profile(get_client(session, payload.client_id)) if payload.client_id else guest_profile()
    except InsureHubError as e:
        raise to_http_exception(e)

    candidates = active_policies(session, policy_ids=payload.policy_ids, insurance_type=payload.insurance_type)
    preferences = RankingPreferences(
        weights=payload.weights,
        max_premium=payload.max_premium,
        insurance_type=payload.insurance_type,
    )
    try:
        ranked = PolicyRanker().rank(candidates, profile, preferences)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    shown = ranked
    if payload.limit:
        shown = diverse_selection(ranked, payload.limit) if payload.diverse else ranked[: payload.limit]

    variant = assign_variant(payload.client_id)
    if payload.client_id and shown:
        background_tasks.add_task(
            record_impressions_task,
            payload.client_id,
            [(r.policy_id, r.match_score) for r in shown],
            variant,
        )

    logger.info(
        f"[Recommend] client={payload.client_id} candidates={len(candidates)} "
        f"eligible={len(ranked)} shown={len(shown)} variant={variant}"
    )
    return RecommendationListOut(
        variant=variant,
        total_candidates=len(ranked),
        items=[
            RankedPolicyOut(
                position=position,
                policy_id=r.policy_id,
                policy_name=r.policy.policy_name,
                company_name=r.policy.company_name,
                insurance_type=r.policy.insurance_type,
                match_score=r.match_score,
                personalized_premium=r.personalized_premium,
                approval_likelihood=r.approval_likelihood.value,
                reasons=[MatchReasonOut(dimension=m.dimension, text=m.text) for m in r.reasons],
            )
            for position, r in enumerate(shown, start=1)
        ],
    )


@router.post("/feedback/click")
def track_click(payload: ClickIn, session: Session = Depends(get_session)):
    updated = ImpressionRecorder(session).mark_clicked(payload.client_id, payload.policy_id)
    return {"status": "success", "updated": updated}


@router.post("/feedback/time-spent")
def track_time_spent(payload: TimeSpentIn, session: Session = Depends(get_session)):
    updated = ImpressionRecorder(session).record_time_spent(payload.client_id, payload.policy_id, payload.seconds)
    return {"status": "success", "updated": updated}
