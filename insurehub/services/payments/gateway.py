from enum import Enum


class GatewayOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


# raw status strings seen from eSewa / Khalti / manual entry
SUCCESS_STATUSES = frozenset({"success", "paid", "completed", "complete"})
FAILURE_STATUSES = frozenset({"failed", "cancelled", "canceled", "declined", "error"})


def classify_status(raw_status: str | None) -> GatewayOutcome:
    status = (raw_status or "").strip().lower()
    if status in SUCCESS_STATUSES:
        return GatewayOutcome.SUCCESS
    if status in FAILURE_STATUSES:
        return GatewayOutcome.FAILURE
    return GatewayOutcome.PENDING
