"""
Policy factor table.

The factor table is data, not code: each policy carries its own multipliers and the
pricing pipeline only ever reads them through FactorTable. Missing multipliers fall
back to 1.0 (no effect), missing steps and the loyalty discount fall back to 0.0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from insurehub.errors import InvalidFactorConfiguration

# column name -> value meaning "no effect"
MULTIPLIER_COLUMNS: dict[str, float] = {
    "age_0_2_factor": 1.0,
    "age_3_17_factor": 1.0,
    "age_18_24_factor": 1.0,
    "age_25_plus_base_factor": 1.0,
    "smoker_factor": 1.0,
    "condition_factor": 1.0,
    "family_base_factor": 1.0,
    "region_urban_factor": 1.0,
    "region_semi_urban_factor": 1.0,
    "region_rural_factor": 1.0,
    "bmi_overweight_factor": 1.0,
    "bmi_obese_factor": 1.0,
    "occ_class_2_factor": 1.0,
    "occ_class_3_factor": 1.0,
}

STEP_COLUMNS: dict[str, float] = {
    "age_factor_step": 0.0,
    "family_member_step": 0.0,
    "loyalty_discount_factor": 0.0,
}


def _to_decimal(value: Any) -> Decimal:
    # str() first so 0.02 stays 0.02 rather than its binary float expansion
    return Decimal(str(value))


@dataclass(frozen=True)
class FactorTable:
    policy_id: int | None
    base_premium: Decimal
    coverage_limit: Decimal
    supports_smokers: bool
    covered_conditions: frozenset[str]

    age_0_2: Decimal = Decimal("1")
    age_3_17: Decimal = Decimal("1")
    age_18_24: Decimal = Decimal("1")
    age_25_plus_base: Decimal = Decimal("1")
    per_year_step: Decimal = Decimal("0")
    smoker: Decimal = Decimal("1")
    condition: Decimal = Decimal("1")
    family_base: Decimal = Decimal("1")
    family_member_step: Decimal = Decimal("0")
    region_urban: Decimal = Decimal("1")
    region_semi_urban: Decimal = Decimal("1")
    region_rural: Decimal = Decimal("1")
    bmi_overweight: Decimal = Decimal("1")
    bmi_obese: Decimal = Decimal("1")
    occupation_class_2: Decimal = Decimal("1")
    occupation_class_3: Decimal = Decimal("1")
    loyalty_discount: Decimal = Decimal("0")

    def region_factor(self, region_type: str | None) -> Decimal:
        return {
            "urban": self.region_urban,
            "semi_urban": self.region_semi_urban,
            "rural": self.region_rural,
        }.get(normalize_region(region_type), Decimal("1"))


# FactorTable attribute -> Policy column
_COLUMN_MAP: dict[str, str] = {
    "age_0_2": "age_0_2_factor",
    "age_3_17": "age_3_17_factor",
    "age_18_24": "age_18_24_factor",
    "age_25_plus_base": "age_25_plus_base_factor",
    "per_year_step": "age_factor_step",
    "smoker": "smoker_factor",
    "condition": "condition_factor",
    "family_base": "family_base_factor",
    "family_member_step": "family_member_step",
    "region_urban": "region_urban_factor",
    "region_semi_urban": "region_semi_urban_factor",
    "region_rural": "region_rural_factor",
    "bmi_overweight": "bmi_overweight_factor",
    "bmi_obese": "bmi_obese_factor",
    "occupation_class_2": "occ_class_2_factor",
    "occupation_class_3": "occ_class_3_factor",
    "loyalty_discount": "loyalty_discount_factor",
}


def normalize_condition(code: str) -> str:
    return str(code).strip().casefold()


def normalize_region(region_type: str | None) -> str | None:
    if not region_type:
        return None
    return str(region_type).strip().lower().replace("-", "_").replace(" ", "_")


def validate_factor_table(policy: Any) -> None:
    """
    Admin-save-time validation. Raises InvalidFactorConfiguration listing every problem found.
    """
    problems: list[str] = []

    for name in ("base_premium", "coverage_limit"):
        value = getattr(policy, name, None)
        if value is None:
            problems.append(f"{name} is required")
        elif _to_decimal(value) <= 0:
            problems.append(f"{name} must be greater than 0 (got {value})")

    for column in list(MULTIPLIER_COLUMNS) + list(STEP_COLUMNS):
        value = getattr(policy, column, None)
        if value is not None and value < 0:
            problems.append(f"{column} must not be negative (got {value})")

    loyalty = getattr(policy, "loyalty_discount_factor", None)
    if loyalty is not None and loyalty >= 1:
        problems.append(f"loyalty_discount_factor must be below 1 (got {loyalty})")

    if problems:
        raise InvalidFactorConfiguration(problems)


def load_factor_table(policy: Any) -> FactorTable:
    """
    Build the FactorTable for a stored policy, applying the explicit no-effect fallbacks.
    Policies reaching this point were validated at save time.
    """
    defaults = {**MULTIPLIER_COLUMNS, **STEP_COLUMNS}
    values: dict[str, Decimal] = {}
    for attr, column in _COLUMN_MAP.items():
        raw = getattr(policy, column, None)
        values[attr] = _to_decimal(defaults[column] if raw is None else raw)

    conditions = getattr(policy, "covered_conditions", None) or []
    return FactorTable(
        policy_id=getattr(policy, "id", None),
        base_premium=_to_decimal(policy.base_premium),
        coverage_limit=_to_decimal(policy.coverage_limit),
        supports_smokers=bool(getattr(policy, "supports_smokers", True)),
        covered_conditions=frozenset(normalize_condition(c) for c in conditions),
        **values,
    )
