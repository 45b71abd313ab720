"""
Match-score dimensions.

Every dimension returns a DimensionScore on a 0-100 scale together with an optional
human-readable reason. The ranker weights and sums them; reasons are only surfaced for
dimensions that land above NEUTRAL_SCORE.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

from insurehub.services.pricing.factors import FactorTable
from insurehub.services.pricing.profile import BuyerProfile

NEUTRAL_SCORE = 50.0

# Fixed budget labels used by the client profile form
_BUDGET_LABELS: dict[str, tuple[float, float]] = {
    "< 5k/yr": (0.0, 5000.0),
    "5k-10k": (5000.0, 10000.0),
    "10k-20k": (10000.0, 20000.0),
    "20k-50k": (20000.0, 50000.0),
    "50k+": (50000.0, 100000.0),
    ">30000": (30000.0, 100000.0),
}

_AMOUNT = r"(\d+(?:\.\d+)?)\s*(k?)"


@dataclass(frozen=True)
class DimensionScore:
    dimension: str
    score: float
    reason: str | None = None


def _amount(number: str, suffix: str) -> float:
    value = float(number)
    return value * 1000 if suffix.lower() == "k" else value


def parse_budget_range(label: str | None) -> tuple[float, float] | None:
    """
    Turn a stored budget label into (min, max). Returns None when no budget is set
    or the label cannot be understood.

    >>> parse_budget_range("10000-20000")
    (10000.0, 20000.0)
    """
    if not label:
        return None
    text = label.strip().lower()
    if text in _BUDGET_LABELS:
        return _BUDGET_LABELS[text]

    between = re.fullmatch(rf"{_AMOUNT}\s*-\s*{_AMOUNT}(?:\s*/\s*yr)?", text)
    if between:
        low = _amount(between.group(1), between.group(2))
        high = _amount(between.group(3), between.group(4))
        return (min(low, high), max(low, high))

    below = re.fullmatch(rf"<\s*{_AMOUNT}(?:\s*/\s*yr)?", text)
    if below:
        return (0.0, _amount(below.group(1), below.group(2)))

    above = re.fullmatch(rf"(?:>\s*{_AMOUNT}|{_AMOUNT}\s*\+)(?:\s*/\s*yr)?", text)
    if above:
        number, suffix = (above.group(1), above.group(2)) if above.group(1) else (above.group(3), above.group(4))
        low = _amount(number, suffix)
        return (low, low * 2)

    return None


def premium_fit(premium: Decimal, profile: BuyerProfile) -> DimensionScore:
    """
    100 at or below the budget midpoint, then linear decay by the width of the budget:
    50 at the budget max, 0 at max + half the width.
    """
    budget = parse_budget_range(profile.budget_range)
    if budget is None:
        return DimensionScore("premium_fit", 100.0)

    low, high = budget
    midpoint = (low + high) / 2
    width = max(high - low, 1.0)
    value = float(premium)

    if value <= midpoint:
        savings = round(high - value)
        return DimensionScore("premium_fit", 100.0, f"Well within your budget (saves about {savings:,} a year)")

    score = max(0.0, 100.0 * (1 - (value - midpoint) / width))
    if value <= high:
        reason = "Fits within your budget"
    elif score > 0:
        reason = "Slightly above your budget"
    else:
        reason = None
    return DimensionScore("premium_fit", score, reason)


def coverage_adequacy(factors: FactorTable, adequacy_threshold: float) -> DimensionScore:
    ratio = float(factors.coverage_limit) / adequacy_threshold if adequacy_threshold > 0 else 1.0
    score = min(100.0, 100.0 * ratio)
    reason = None
    if ratio >= 1:
        reason = f"Coverage of {float(factors.coverage_limit):,.0f} meets the recommended level"
    elif score > NEUTRAL_SCORE:
        reason = "Solid coverage limit"
    return DimensionScore("coverage", score, reason)


def condition_match(factors: FactorTable, profile: BuyerProfile) -> DimensionScore:
    conditions = profile.pre_existing_conditions
    if not conditions:
        return DimensionScore("condition_match", 100.0)
    matched = len(conditions & factors.covered_conditions)
    score = 100.0 * matched / len(conditions)
    reason = None
    if matched == len(conditions):
        reason = f"Covers all {matched} of your medical conditions" if matched > 1 else "Covers your medical condition"
    elif matched:
        reason = f"Matches {matched} of your {len(conditions)} medical conditions"
    return DimensionScore("condition_match", score, reason)


def company_trust(company_rating: float | None, claim_settlement_ratio: float | None) -> DimensionScore:
    rating_part = min(1.0, max(0.0, (company_rating or 0.0) / 5.0))
    settlement_part = min(1.0, max(0.0, (claim_settlement_ratio or 0.0) / 100.0))
    score = 100.0 * (0.5 * rating_part + 0.5 * settlement_part)
    reason = None
    if claim_settlement_ratio and claim_settlement_ratio >= 90:
        reason = f"Insurer settles {claim_settlement_ratio:.0f}% of claims"
    elif score > NEUTRAL_SCORE:
        reason = "Trusted insurer"
    return DimensionScore("trust", score, reason)


def smoker_compatibility(factors: FactorTable, profile: BuyerProfile) -> DimensionScore:
    # Incompatible pairs never reach scoring; they are dropped by the eligibility gate.
    if profile.is_smoker and factors.supports_smokers:
        return DimensionScore("smoker_compatibility", 100.0, "Accepts smokers")
    if profile.is_smoker:
        return DimensionScore("smoker_compatibility", 0.0)
    return DimensionScore("smoker_compatibility", 100.0)
