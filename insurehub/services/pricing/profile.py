from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from insurehub.services.pricing.factors import normalize_condition, normalize_region
from insurehub.settings import settings


@dataclass(frozen=True)
class BuyerProfile:
    """
    Read-only snapshot of a buyer's risk attributes, composed per request.
    None means "unknown" and makes the matching pricing step a no-op.
    """
    age: int | None = None
    is_smoker: bool = False
    bmi: float | None = None
    occupation_class: int | None = None
    region_type: str | None = None
    family_member_count: int = 1
    pre_existing_conditions: frozenset[str] = field(default_factory=frozenset)
    budget_range: str | None = None
    coverage_preference: str = "individual"
    tenure_years: float = 0.0

    @property
    def is_family(self) -> bool:
        return self.coverage_preference == "family"


def age_on(dob: date, today: date) -> int:
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


def compute_bmi(weight_kg: float | None, height_cm: float | None) -> float | None:
    if not weight_kg or not height_cm or weight_kg <= 0 or height_cm <= 0:
        return None
    height_m = height_cm / 100.0
    return round(weight_kg / (height_m * height_m), 1)


def parse_occupation_class(value: Any) -> int | None:
    """Accepts 2, "2", "class_2" or "Class 2"."""
    if value is None:
        return None
    match = re.search(r"([123])", str(value))
    return int(match.group(1)) if match else None


def tenure_in_years(created_at: datetime | date | None, today: date) -> float:
    if created_at is None:
        return 0.0
    start = created_at.date() if isinstance(created_at, datetime) else created_at
    return max(0.0, (today - start).days / 365.25)


def build_buyer_profile(client: Any, today: date | None = None) -> BuyerProfile:
    """
    Compose a BuyerProfile from a stored Client row (or any object with the same attributes).
    """
    today = today or date.today()
    dob = getattr(client, "dob", None)
    age = age_on(dob, today) if dob else None
    if age is not None and not 0 <= age <= 120:
        age = None

    conditions = getattr(client, "pre_existing_conditions", None) or []
    coverage = (getattr(client, "coverage_type", None) or "individual").strip().lower()

    return BuyerProfile(
        age=age,
        is_smoker=bool(getattr(client, "is_smoker", False)),
        bmi=compute_bmi(getattr(client, "weight_kg", None), getattr(client, "height_cm", None)),
        occupation_class=parse_occupation_class(getattr(client, "occupation_class", None)),
        region_type=normalize_region(getattr(client, "region_type", None)),
        family_member_count=max(1, int(getattr(client, "family_members", None) or 1)),
        pre_existing_conditions=frozenset(normalize_condition(c) for c in conditions if c),
        budget_range=getattr(client, "budget_range", None),
        coverage_preference="family" if coverage == "family" else "individual",
        tenure_years=tenure_in_years(getattr(client, "created_at", None), today),
    )


def guest_profile() -> BuyerProfile:
    """Stand-in profile used to rank policies for callers without a client record."""
    return BuyerProfile(age=settings.default_profile_age)
