import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from insurehub.api.errors import to_http_exception
from insurehub.db import get_session
from insurehub.errors import InsureHubError
from insurehub.schemas.purchase import BuyRequestResponse
from insurehub.services.catalog import get_client, get_policy
from insurehub.services.pricing.billing import normalize_billing_cycle
from insurehub.services.purchase import PurchaseService

router = APIRouter()
logger = logging.getLogger(__name__)


class PurchaseIn(BaseModel):
    client_id: int
    policy_id: int
    billing_cycle: str = "yearly"
    email: Optional[str] = None

    @field_validator("billing_cycle")
    @classmethod
    def validate_billing_cycle(cls, v: str) -> str:
        return normalize_billing_cycle(v)


class CycleAmountIn(BaseModel):
    cycle_amount: Decimal = Field(..., gt=0)
    changed_by: Optional[str] = None


@router.post("", response_model=BuyRequestResponse)
def create_purchase(payload: PurchaseIn, session: Session = Depends(get_session)):
    """Create (or return the existing) buy request for a client/policy pair."""
    try:
        client = get_client(session, payload.client_id)
        policy = get_policy(session, payload.policy_id)
        buy_request, _created = PurchaseService(session).create_buy_request(
            client, policy, billing_cycle=payload.billing_cycle, email=payload.email
        )
    except InsureHubError as e:
        raise to_http_exception(e)
    return buy_request


@router.patch("/{buy_request_id}/cycle-amount", response_model=BuyRequestResponse)
def update_cycle_amount(buy_request_id: int, payload: CycleAmountIn, session: Session = Depends(get_session)):
    try:
        return PurchaseService(session).set_cycle_amount(buy_request_id, payload.cycle_amount, payload.changed_by)
    except InsureHubError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
