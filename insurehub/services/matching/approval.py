from __future__ import annotations

from enum import Enum

from insurehub.services.pricing.factors import FactorTable, normalize_condition
from insurehub.services.pricing.profile import BuyerProfile


class ApprovalLikelihood(str, Enum):
    GUARANTEED = "Guaranteed"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


def approval_likelihood(
    factors: FactorTable,
    profile: BuyerProfile,
    waiting_period_days: int | None,
    copay_percent: int | None,
    exclusions: list[str] | None = None,
) -> ApprovalLikelihood:
    """
    Discrete underwriting bucket, not a prediction.

    Points: conditions covered (2 all / 1 some / 0 none), waiting period (2 if <= 30 days,
    1 if <= 90), copay (2 if none, 1 if <= 10%). 6 -> Guaranteed, 4+ -> High, 2+ -> Medium.
    A buyer condition listed in the policy exclusions is always Low.
    """
    conditions = profile.pre_existing_conditions
    excluded = {normalize_condition(e) for e in (exclusions or [])}
    if conditions & excluded:
        return ApprovalLikelihood.LOW

    points = 0
    covered = len(conditions & factors.covered_conditions)
    if not conditions or covered == len(conditions):
        points += 2
    elif covered:
        points += 1

    waiting = waiting_period_days or 0
    if waiting <= 30:
        points += 2
    elif waiting <= 90:
        points += 1

    copay = copay_percent or 0
    if copay == 0:
        points += 2
    elif copay <= 10:
        points += 1

    if points >= 6:
        return ApprovalLikelihood.GUARANTEED
    if points >= 4:
        return ApprovalLikelihood.HIGH
    if points >= 2:
        return ApprovalLikelihood.MEDIUM
    return ApprovalLikelihood.LOW
