from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# billing cycle -> months per cycle
CYCLE_MONTHS: dict[str, int] = {
    "monthly": 1,
    "quarterly": 3,
    "half_yearly": 6,
    "yearly": 12,
}

DEFAULT_BILLING_CYCLE = "yearly"


def normalize_billing_cycle(cycle: str | None) -> str:
    if not cycle:
        return DEFAULT_BILLING_CYCLE
    key = cycle.strip().lower().replace("-", "_").replace(" ", "_")
    if key == "annual":
        key = "yearly"
    if key not in CYCLE_MONTHS:
        raise ValueError(f"Unknown billing cycle: {cycle}")
    return key


def cycles_per_year(cycle: str) -> int:
    return 12 // CYCLE_MONTHS[normalize_billing_cycle(cycle)]


def cycle_amount_for(calculated_premium: Decimal, cycle: str) -> Decimal:
    """Installment size for one cycle of a full-term premium, half-up to the minor unit."""
    installments = Decimal(cycles_per_year(cycle))
    return (Decimal(calculated_premium) / installments).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
