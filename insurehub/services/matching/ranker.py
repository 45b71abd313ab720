import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from insurehub.errors import IneligibleRisk
from insurehub.services.matching.approval import ApprovalLikelihood, approval_likelihood
from insurehub.services.matching.scoring import (
    NEUTRAL_SCORE,
    DimensionScore,
    company_trust,
    condition_match,
    coverage_adequacy,
    premium_fit,
    smoker_compatibility,
)
from insurehub.services.pricing.calculator import PremiumCalculator
from insurehub.services.pricing.profile import BuyerProfile
from insurehub.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchReason:
    dimension: str
    text: str


@dataclass(frozen=True)
class RankingPreferences:
    weights: dict[str, float] | None = None
    max_premium: Decimal | None = None
    insurance_type: str | None = None


@dataclass(frozen=True)
class RankedPolicy:
    policy: Any
    policy_id: int
    match_score: float
    personalized_premium: Decimal
    approval_likelihood: ApprovalLikelihood
    reasons: list[MatchReason] = field(default_factory=list)
    dimensions: list[DimensionScore] = field(default_factory=list)


class PolicyRanker:
    """
    Ranks candidate policies for one buyer.
    Score = weighted mean of the dimension scores (0-100). Smoker-ineligible policies are dropped.
    """

    def __init__(
        self,
        calculator: PremiumCalculator | None = None,
        weights: dict[str, float] | None = None,
        adequacy_threshold: float | None = None,
        max_reasons: int | None = None,
    ):
        self.calculator = calculator or PremiumCalculator()
        self.weights = weights or settings.ranking_weights()
        self.adequacy_threshold = adequacy_threshold or settings.coverage_adequacy_threshold
        self.max_reasons = max_reasons or settings.max_match_reasons

    def rank(
        self,
        policies: Iterable[Any],
        profile: BuyerProfile,
        preferences: RankingPreferences | None = None,
    ) -> list[RankedPolicy]:
        preferences = preferences or RankingPreferences()
        weights = {**self.weights, **(preferences.weights or {})}

        ranked: list[RankedPolicy] = []
        for policy in policies:
            if preferences.insurance_type and getattr(policy, "insurance_type", None) != preferences.insurance_type:
                continue
            scored = self.score_policy(policy, profile, weights)
            if scored is None:
                continue
            if preferences.max_premium is not None and scored.personalized_premium > preferences.max_premium:
                continue
            ranked.append(scored)

        ranked.sort(key=lambda r: (
            -r.match_score,
            -float(getattr(r.policy, "claim_settlement_ratio", 0) or 0),
            r.personalized_premium,
            r.policy_id,
        ))
        return ranked

    def score_policy(self, policy: Any, profile: BuyerProfile, weights: dict[str, float]) -> RankedPolicy | None:
        factors = self.calculator.factors_for(policy)
        try:
            premium = self.calculator.price(factors, profile)
        except IneligibleRisk as e:
            logger.debug(f"[PolicyRanker] Excluding policy {factors.policy_id}: {e.reason}")
            return None

        dimensions = [
            premium_fit(premium, profile),
            coverage_adequacy(factors, self.adequacy_threshold),
            condition_match(factors, profile),
            company_trust(getattr(policy, "company_rating", None), getattr(policy, "claim_settlement_ratio", None)),
            smoker_compatibility(factors, profile),
        ]

        total_weight = sum(weights.get(d.dimension, 0.0) for d in dimensions)
        if total_weight <= 0:
            raise ValueError("ranking weights must sum to a positive value")
        weighted = {d.dimension: weights.get(d.dimension, 0.0) * d.score / total_weight for d in dimensions}
        match_score = round(min(100.0, max(0.0, sum(weighted.values()))), 2)

        return RankedPolicy(
            policy=policy,
            policy_id=factors.policy_id,
            match_score=match_score,
            personalized_premium=premium,
            approval_likelihood=approval_likelihood(
                factors,
                profile,
                getattr(policy, "waiting_period_days", None),
                getattr(policy, "copay_percent", None),
                getattr(policy, "exclusions", None),
            ),
            reasons=self._reasons(dimensions, weighted),
            dimensions=dimensions,
        )

    def _reasons(self, dimensions: list[DimensionScore], weighted: dict[str, float]) -> list[MatchReason]:
        material = [d for d in dimensions if d.reason and d.score > NEUTRAL_SCORE and weighted[d.dimension] > 0]
        material.sort(key=lambda d: (-weighted[d.dimension], d.dimension))
        return [MatchReason(d.dimension, d.reason) for d in material[: self.max_reasons]]


def waiting_period_band(days: int | None) -> str:
    if not days:
        return "immediate"
    if days <= 30:
        return "short"
    if days <= 90:
        return "medium"
    return "long"


def _too_similar(candidate: Any, chosen: Any) -> bool:
    same = 0
    if getattr(candidate, "company_name", None) == getattr(chosen, "company_name", None):
        same += 1
    if getattr(candidate, "insurance_type", None) == getattr(chosen, "insurance_type", None):
        same += 1
    if waiting_period_band(getattr(candidate, "waiting_period_days", None)) == waiting_period_band(
        getattr(chosen, "waiting_period_days", None)
    ):
        same += 1
    return same > 1


def diverse_selection(ranked: list[RankedPolicy], count: int) -> list[RankedPolicy]:
    """
    Pick `count` entries from an already ranked list: always the best fit, then policies that
    differ from every pick so far on at least two of company / insurance type / waiting band,
    then the remaining top scorers. Picks keep their ranked order.
    """
    if len(ranked) <= count:
        return list(ranked)

    picked_ids = {ranked[0].policy_id}
    picked = [ranked[0]]
    for entry in ranked[1:]:
        if len(picked) >= count:
            break
        if not any(_too_similar(entry.policy, p.policy) for p in picked):
            picked.append(entry)
            picked_ids.add(entry.policy_id)

    for entry in ranked[1:]:
        if len(picked) >= count:
            break
        if entry.policy_id not in picked_ids:
            picked.append(entry)
            picked_ids.add(entry.policy_id)

    order = {r.policy_id: i for i, r in enumerate(ranked)}
    return sorted(picked, key=lambda r: order[r.policy_id])
