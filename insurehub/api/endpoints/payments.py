"""
Payments API

Verification, failure notification and the raw gateway callback. All three are safe to
repeat; only the first successful transition produces side effects.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insurehub.api.errors import to_http_exception
from insurehub.db import get_session
from insurehub.errors import InsureHubError
from insurehub.schemas.purchase import FailureNoticeOut, GatewayCallbackOut, VerificationOut
from insurehub.services.payments.verification import PaymentVerifier, VerificationResult

router = APIRouter()
logger = logging.getLogger(__name__)


class GatewayCallbackIn(BaseModel):
    status: str = Field(..., min_length=1)
    meta: Dict[str, Any] = Field(default_factory=dict)


def _verification_out(result: VerificationResult) -> VerificationOut:
    return VerificationOut(
        payment_id=result.payment_id,
        already_verified=result.already_verified,
        first_payment=result.first_payment,
        next_renewal_date=result.next_renewal_date,
        renewal_status=result.renewal_status,
    )


@router.post("/{payment_id}/verify", response_model=VerificationOut)
def verify_payment(payment_id: int, session: Session = Depends(get_session)):
    try:
        result = PaymentVerifier(session).verify(payment_id)
    except InsureHubError as e:
        raise to_http_exception(e)
    return _verification_out(result)


@router.post("/{payment_id}/notify-failure", response_model=FailureNoticeOut)
def notify_payment_failure(payment_id: int, session: Session = Depends(get_session)):
    try:
        notified = PaymentVerifier(session).notify_failure(payment_id)
    except InsureHubError as e:
        raise to_http_exception(e)
    return FailureNoticeOut(payment_id=payment_id, notified=notified)


@router.post("/{payment_id}/callback", response_model=GatewayCallbackOut)
def gateway_callback(payment_id: int, payload: GatewayCallbackIn, session: Session = Depends(get_session)):
    try:
        result = PaymentVerifier(session).handle_gateway_callback(payment_id, payload.status, payload.meta)
    except InsureHubError as e:
        raise to_http_exception(e)
    return GatewayCallbackOut(
        payment_id=payment_id,
        outcome=result.outcome.value,
        verification=_verification_out(result.verification) if result.verification else None,
        failure_notified=result.failure_notified,
    )
