"""
Premium calculation.

A personalized premium is the policy's base premium pushed through a fixed chain of
multiplicative steps. Each step is a plain function (price, profile, factors) -> price
so every rule can be tested on its own:

    age -> smoker gate -> covered conditions -> family -> region -> bmi -> occupation -> loyalty

Guests without a profile get a range instead of a point estimate (see quote_range).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import Any, Callable

from insurehub.errors import IneligibleRisk
from insurehub.services.pricing.factors import FactorTable, load_factor_table
from insurehub.services.pricing.profile import BuyerProfile
from insurehub.settings import settings

logger = logging.getLogger(__name__)

MINOR_UNIT = Decimal("0.01")
MIN_PREMIUM = MINOR_UNIT
OVERWEIGHT_BMI = 25.0
OBESE_BMI = 30.0

PricingStep = Callable[[Decimal, BuyerProfile, FactorTable], Decimal]


def apply_age(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    age = profile.age
    if age is None or age < 0:
        return price
    if age <= 2:
        return price * factors.age_0_2
    if age <= 17:
        return price * factors.age_3_17
    if age <= 24:
        return price * factors.age_18_24
    years_past_base = max(0, age - 25)
    return price * factors.age_25_plus_base * (1 + factors.per_year_step * years_past_base)


def apply_smoker(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    if not profile.is_smoker:
        return price
    if not factors.supports_smokers:
        raise IneligibleRisk(factors.policy_id, "policy does not cover smokers")
    return price * factors.smoker


def apply_conditions(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    # compounding: one multiplication per covered condition
    matched = profile.pre_existing_conditions & factors.covered_conditions
    for _ in sorted(matched):
        price = price * factors.condition
    return price


def apply_family(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    if not profile.is_family:
        return price
    extra_members = max(0, profile.family_member_count - 1)
    return price * factors.family_base * (1 + factors.family_member_step * extra_members)


def apply_region(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    return price * factors.region_factor(profile.region_type)


def apply_bmi(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    if profile.bmi is None:
        return price
    if profile.bmi >= OBESE_BMI:
        return price * factors.bmi_obese
    if profile.bmi >= OVERWEIGHT_BMI:
        return price * factors.bmi_overweight
    return price


def apply_occupation(price: Decimal, profile: BuyerProfile, factors: FactorTable) -> Decimal:
    if profile.occupation_class == 2:
        return price * factors.occupation_class_2
    if profile.occupation_class == 3:
        return price * factors.occupation_class_3
    return price


def apply_loyalty(
    price: Decimal,
    profile: BuyerProfile,
    factors: FactorTable,
    tenure_ceiling_years: Decimal = Decimal("5"),
) -> Decimal:
    if factors.loyalty_discount <= 0 or profile.tenure_years <= 0:
        return price
    tenure_share = min(Decimal("1"), Decimal(str(profile.tenure_years)) / tenure_ceiling_years)
    return price * (1 - factors.loyalty_discount * tenure_share)


def round_premium(value: Decimal) -> Decimal:
    assert value >= 0, f"premium went negative ({value}); factor table invariant violated"
    rounded = value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)
    if rounded <= 0:
        logger.warning(f"[PremiumCalculator] Factors collapsed premium to {rounded}, flooring at {MIN_PREMIUM}")
        return MIN_PREMIUM
    return rounded


@dataclass(frozen=True)
class PricingStepResult:
    step: str
    multiplier: Decimal
    premium: Decimal


@dataclass(frozen=True)
class QuoteBreakdown:
    policy_id: int | None
    base_premium: Decimal
    personalized_premium: Decimal
    steps: list[PricingStepResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "base_premium": str(self.base_premium),
            "personalized_premium": str(self.personalized_premium),
            "steps": [
                {"step": s.step, "multiplier": str(s.multiplier), "premium": str(s.premium)}
                for s in self.steps
            ],
        }


@dataclass(frozen=True)
class PremiumRange:
    policy_id: int | None
    premium_min: Decimal
    premium_max: Decimal


class PremiumCalculator:
    """
    Converts a policy's base rate plus a buyer's risk profile into a personalized premium.
    """

    def __init__(
        self,
        tenure_ceiling_years: float | None = None,
        guest_range_multiplier: float | None = None,
    ):
        ceiling = tenure_ceiling_years if tenure_ceiling_years is not None else settings.loyalty_tenure_ceiling_years
        multiplier = guest_range_multiplier if guest_range_multiplier is not None else settings.guest_range_multiplier
        self.tenure_ceiling_years = Decimal(str(ceiling))
        self.guest_range_multiplier = Decimal(str(multiplier))
        self.pipeline: list[tuple[str, PricingStep]] = [
            ("age", apply_age),
            ("smoker", apply_smoker),
            ("conditions", apply_conditions),
            ("family", apply_family),
            ("region", apply_region),
            ("bmi", apply_bmi),
            ("occupation", apply_occupation),
            ("loyalty", partial(apply_loyalty, tenure_ceiling_years=self.tenure_ceiling_years)),
        ]

    @staticmethod
    def factors_for(policy: Any) -> FactorTable:
        return policy if isinstance(policy, FactorTable) else load_factor_table(policy)

    def quote(self, policy: Any, profile: BuyerProfile) -> QuoteBreakdown:
        factors = self.factors_for(policy)
        price = factors.base_premium
        steps: list[PricingStepResult] = []
        for name, step in self.pipeline:
            before = price
            price = step(price, profile, factors)
            assert price >= 0, f"pricing step '{name}' produced a negative premium ({price})"
            multiplier = (price / before) if before > 0 else Decimal("1")
            steps.append(PricingStepResult(step=name, multiplier=multiplier.quantize(Decimal("0.0001")), premium=price))

        final = round_premium(price)
        return QuoteBreakdown(
            policy_id=factors.policy_id,
            base_premium=factors.base_premium,
            personalized_premium=final,
            steps=steps,
        )

    def price(self, policy: Any, profile: BuyerProfile) -> Decimal:
        return self.quote(policy, profile).personalized_premium

    def quote_range(self, policy: Any) -> PremiumRange:
        """
        Guest range mode: skips every profile-dependent step and returns [base, base * multiplier].
        """
        factors = self.factors_for(policy)
        return PremiumRange(
            policy_id=factors.policy_id,
            premium_min=round_premium(factors.base_premium),
            premium_max=round_premium(factors.base_premium * self.guest_range_multiplier),
        )
