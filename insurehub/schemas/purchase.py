from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BuyRequestResponse(BaseModel):
    id: int
    user_id: int
    policy_id: int
    status: str
    billing_cycle: str
    calculated_premium: Decimal
    cycle_amount: Decimal
    next_renewal_date: Optional[date] = None
    renewal_status: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VerificationOut(BaseModel):
    payment_id: int
    already_verified: bool
    first_payment: bool
    next_renewal_date: Optional[date] = None
    renewal_status: Optional[str] = None


class FailureNoticeOut(BaseModel):
    payment_id: int
    notified: bool


class GatewayCallbackOut(BaseModel):
    payment_id: int
    outcome: str
    verification: Optional[VerificationOut] = None
    failure_notified: bool = False
