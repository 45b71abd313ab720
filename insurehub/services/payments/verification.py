"""
Payment verification state machine.

    submitted --verify--> verified        (terminal, side effects exactly once)
    submitted --gateway failure--> failed (terminal, failure notice exactly once)

A buy request may receive further payment attempts after a failure. The flags on the
payment row (is_verified, failed_notified) are only ever flipped by a conditional UPDATE;
whoever flips them owns the side effects. Side effects run after the commit and never
undo it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from insurehub.errors import DocumentRenderFailure, InvalidTransition, NotFound
from insurehub.models import BuyRequest, Payment
from insurehub.services.matching.impressions import ImpressionRecorder
from insurehub.services.notifications import (
    PAYMENT_FAILED,
    PAYMENT_VERIFIED,
    POLICY_DOCUMENT,
    PURCHASE_CONFIRMED,
    RENEWAL_CONFIRMED,
    DocumentRenderer,
    NotificationDispatcher,
)
from insurehub.services.payments.gateway import GatewayOutcome, classify_status
from insurehub.services.payments.repository import PaymentRepository
from insurehub.services.renewal.scheduler import RenewalScheduler

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "payment was not completed"


@dataclass(frozen=True)
class VerificationResult:
    payment_id: int
    already_verified: bool
    first_payment: bool
    next_renewal_date: date | None
    renewal_status: str | None


@dataclass(frozen=True)
class CallbackResult:
    payment_id: int
    outcome: GatewayOutcome
    verification: VerificationResult | None = None
    failure_notified: bool = False


class PaymentVerifier:
    def __init__(
        self,
        session: Session,
        dispatcher: NotificationDispatcher | None = None,
        renderer: DocumentRenderer | None = None,
        scheduler: RenewalScheduler | None = None,
        recorder: ImpressionRecorder | None = None,
    ):
        self.session = session
        self.payments = PaymentRepository(session)
        self.dispatcher = dispatcher or NotificationDispatcher(session)
        self.renderer = renderer or DocumentRenderer()
        self.scheduler = scheduler or RenewalScheduler(self.payments)
        self.recorder = recorder or ImpressionRecorder(session)

    def _load(self, payment_id: int) -> Payment:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found")
        return payment

    def verify(self, payment_id: int, now: datetime | None = None, today: date | None = None) -> VerificationResult:
        """
        Mark a payment verified and advance the renewal schedule.
        Verifying an already verified payment is a no-op that reports the current schedule.
        A failed payment cannot be verified; the buyer retries with a new payment.
        """
        payment = self._load(payment_id)
        if not payment.is_verified:
            self._ensure_not_failed(payment)
        now = now or datetime.now(timezone.utc)

        won = self.payments.mark_verified(payment_id, now)
        if not won:
            self.session.rollback()
            self.session.refresh(payment)
            if not payment.is_verified:
                # a concurrent failure notice won the row
                self._ensure_not_failed(payment)
            buy_request = self.session.get(BuyRequest, payment.buy_request_id)
            logger.info(f"[PAYMENT] Payment {payment_id} already verified, nothing to do")
            return VerificationResult(
                payment_id=payment_id,
                already_verified=True,
                first_payment=False,
                next_renewal_date=buy_request.next_renewal_date if buy_request else None,
                renewal_status=buy_request.renewal_status if buy_request else None,
            )

        try:
            buy_request = self.session.get(BuyRequest, payment.buy_request_id)
            if buy_request is None:
                raise NotFound(f"Buy request {payment.buy_request_id} for payment {payment_id} not found")

            first_payment = not self.payments.has_other_verified(buy_request.id, payment_id)
            next_date = self.scheduler.schedule(buy_request, today=today)
            buy_request.status = "completed"
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(payment)
        logger.info(
            f"[PAYMENT] Payment {payment_id} verified "
            f"({'first payment' if first_payment else 'renewal'}, next renewal {next_date})"
        )

        self._after_verified(payment, buy_request, first_payment)
        return VerificationResult(
            payment_id=payment_id,
            already_verified=False,
            first_payment=first_payment,
            next_renewal_date=buy_request.next_renewal_date,
            renewal_status=buy_request.renewal_status,
        )

    def _ensure_not_failed(self, payment: Payment) -> None:
        if payment.failed_notified or classify_status(payment.status) is GatewayOutcome.FAILURE:
            raise InvalidTransition(f"Payment {payment.id} has failed (status={payment.status}) and cannot be verified")

    def _context(self, payment: Payment, buy_request: BuyRequest) -> dict[str, Any]:
        meta = payment.meta or {}
        return {
            "policy_name": buy_request.policy.policy_name if buy_request.policy else buy_request.policy_id,
            "buy_request_id": buy_request.id,
            "amount": payment.amount,
            "currency": payment.currency,
            "billing_cycle": buy_request.billing_cycle,
            "next_renewal_date": buy_request.next_renewal_date,
            "transaction_reference": meta.get("transaction_reference") or payment.provider_reference,
        }

    def _recipient(self, buy_request: BuyRequest) -> str | None:
        return buy_request.email or (buy_request.client.email if buy_request.client else None)

    def _after_verified(self, payment: Payment, buy_request: BuyRequest, first_payment: bool) -> None:
        context = self._context(payment, buy_request)
        self.dispatcher.dispatch(payment.user_id, PAYMENT_VERIFIED, context)

        email = self._recipient(buy_request)
        if not first_payment:
            self.dispatcher.dispatch(payment.user_id, RENEWAL_CONFIRMED, context, email=email)
            return

        attachments = {}
        try:
            attachments[f"policy-{buy_request.id}.pdf"] = self.renderer.render(POLICY_DOCUMENT, context)
        except DocumentRenderFailure as e:
            logger.warning(f"[PAYMENT] Policy document for buy request {buy_request.id} not rendered: {e}")
        self.dispatcher.dispatch(payment.user_id, PURCHASE_CONFIRMED, context, email=email, attachments=attachments)

        try:
            marked = self.recorder.mark_purchased(payment.user_id, payment.policy_id)
            logger.info(f"[PAYMENT] Marked {marked} recommendation impression(s) as purchased")
        except Exception as e:
            self.session.rollback()
            logger.warning(f"[PAYMENT] Could not mark impressions purchased for payment {payment.id}: {e}")

    def notify_failure(self, payment_id: int, now: datetime | None = None) -> bool:
        """
        Send the failure notice for a failed payment once. Returns False when it was
        already sent (by this or a concurrent caller).
        """
        payment = self._load(payment_id)
        if payment.is_verified or classify_status(payment.status) is not GatewayOutcome.FAILURE:
            raise InvalidTransition(f"Payment {payment_id} is not in a failed state (status={payment.status})")

        now = now or datetime.now(timezone.utc)
        won = self.payments.mark_failure_notified(payment_id, now)
        self.session.commit()
        if not won:
            self.session.refresh(payment)
            if payment.is_verified:
                raise InvalidTransition(f"Payment {payment_id} was verified concurrently")
            logger.info(f"[PAYMENT] Failure notice for payment {payment_id} already sent")
            return False

        self.session.refresh(payment)
        buy_request = self.session.get(BuyRequest, payment.buy_request_id)
        context = self._context(payment, buy_request)
        context["reason"] = (payment.meta or {}).get("reason") or DEFAULT_FAILURE_REASON
        self.dispatcher.dispatch(payment.user_id, PAYMENT_FAILED, context, email=self._recipient(buy_request))
        logger.info(f"[PAYMENT] Failure notice sent for payment {payment_id}")
        return True

    def handle_gateway_callback(
        self,
        payment_id: int,
        status: str,
        meta: dict[str, Any] | None = None,
    ) -> CallbackResult:
        """
        Record the gateway's raw status/meta and route to verify or notify_failure.
        Verified and failed payments keep their status: a late failure callback for a
        verified payment and a late success callback for a failed one are ignored.
        """
        payment = self._load(payment_id)
        outcome = classify_status(status)
        merged_meta = {**(payment.meta or {}), **(meta or {})}

        recorded = self.payments.record_gateway_status(payment_id, status, merged_meta)
        self.session.commit()
        self.session.refresh(payment)
        logger.info(f"[PAYMENT] Gateway callback for payment {payment_id}: status={status} ({outcome.value})")

        if outcome is GatewayOutcome.SUCCESS:
            if not recorded and not payment.is_verified:
                logger.warning(f"[PAYMENT] Ignoring success callback for failed payment {payment_id}")
                return CallbackResult(payment_id, outcome)
            return CallbackResult(payment_id, outcome, verification=self.verify(payment_id))

        if outcome is GatewayOutcome.FAILURE:
            if payment.is_verified:
                logger.warning(f"[PAYMENT] Ignoring failure callback for already verified payment {payment_id}")
                return CallbackResult(payment_id, outcome)
            return CallbackResult(payment_id, outcome, failure_notified=self.notify_failure(payment_id))

        return CallbackResult(payment_id, outcome)
