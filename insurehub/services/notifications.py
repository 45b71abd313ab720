"""
Outbound collaborators: notification dispatch (in-app + email webhook) and document rendering.

Both are fire-and-forget from the engine's point of view. Callers never see an exception
from dispatch(); render() raises DocumentRenderFailure which callers catch and log.
"""

from __future__ import annotations

import base64
import logging
from collections import defaultdict
from typing import Any

import httpx
from sqlalchemy.orm import Session

from insurehub.errors import DocumentRenderFailure, NotificationDispatchFailure
from insurehub.models import Notification
from insurehub.settings import settings

logger = logging.getLogger(__name__)

PAYMENT_VERIFIED = "payment_verified"
PURCHASE_CONFIRMED = "purchase_confirmed"
RENEWAL_CONFIRMED = "renewal_confirmed"
PAYMENT_FAILED = "payment_failed"
RENEWAL_REMINDER = "renewal_reminder"
POLICY_EXPIRED = "policy_expired"
POLICY_DOCUMENT = "policy_document"

# template id -> (title, message)
TEMPLATES: dict[str, tuple[str, str]] = {
    PAYMENT_VERIFIED: (
        "Payment verified",
        "Your payment for {policy_name} is verified.",
    ),
    PURCHASE_CONFIRMED: (
        "Policy purchase confirmed",
        "Welcome aboard! Your {policy_name} cover is active. Your policy document is attached.",
    ),
    RENEWAL_CONFIRMED: (
        "Renewal confirmed",
        "Your {policy_name} cover has been renewed until {next_renewal_date}.",
    ),
    PAYMENT_FAILED: (
        "Payment failed",
        "Your payment for {policy_name} failed ({reason}). Please repay to continue your coverage.",
    ),
    RENEWAL_REMINDER: (
        "Renewal reminder",
        "Your policy {policy_name} renews on {next_renewal_date}. Please renew to keep your coverage active.",
    ),
    POLICY_EXPIRED: (
        "Policy expired",
        "Your policy {policy_name} has expired because it was not renewed within {grace_days} days.",
    ),
}


def render_message(template_id: str, context: dict[str, Any]) -> tuple[str, str]:
    title, body = TEMPLATES.get(template_id, (template_id.replace("_", " ").capitalize(), ""))
    values = defaultdict(lambda: "-", {k: v for k, v in context.items() if v is not None})
    return title, body.format_map(values)


class NotificationDispatcher:
    """
    Writes the in-app notification row and forwards the email request to the mail webhook.
    """

    def __init__(self, session: Session, webhook_url: str | None = None, timeout: float | None = None):
        self.session = session
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout or settings.outbound_timeout_seconds

    def dispatch(
        self,
        user_id: int,
        template_id: str,
        context: dict[str, Any],
        email: str | None = None,
        attachments: dict[str, bytes] | None = None,
    ) -> bool:
        """
        Returns True when both the in-app row and (if configured) the email request went out.
        Never raises.
        """
        try:
            self._store_in_app(user_id, template_id, context)
            self._send_email(user_id, template_id, context, email, attachments)
            return True
        except Exception as e:
            logger.warning(f"[Notify] Dispatch of {template_id} to user {user_id} failed: {e}")
            return False

    def _store_in_app(self, user_id: int, template_id: str, context: dict[str, Any]) -> None:
        title, message = render_message(template_id, context)
        try:
            self.session.add(
                Notification(
                    user_id=user_id,
                    template_id=template_id,
                    title=title,
                    message=message,
                    context={k: str(v) for k, v in context.items()},
                    is_read=False,
                )
            )
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise NotificationDispatchFailure(f"in-app notification not stored: {e}") from e

    def _send_email(
        self,
        user_id: int,
        template_id: str,
        context: dict[str, Any],
        email: str | None,
        attachments: dict[str, bytes] | None,
    ) -> None:
        if not email:
            logger.info(f"[Notify] No email for user {user_id}, {template_id} stored in-app only")
            return
        if not self.webhook_url:
            logger.info(f"[Notify] Mail webhook not configured, skipping email {template_id} to {email}")
            return

        payload = {
            "recipient": email,
            "user_id": user_id,
            "template_id": template_id,
            "context": {k: str(v) for k, v in context.items()},
            "attachments": {
                name: base64.b64encode(content).decode("ascii") for name, content in (attachments or {}).items()
            },
        }
        timeout = httpx.Timeout(self.timeout, connect=5.0)
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.post(self.webhook_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDispatchFailure(f"mail webhook rejected {template_id}: {e}") from e


class DocumentRenderer:
    """
    Client for the PDF rendering service: (template_id, context) -> bytes.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        base_url = base_url if base_url is not None else settings.document_renderer_url
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.outbound_timeout_seconds

    def render(self, template_id: str, context: dict[str, Any]) -> bytes:
        if not self.base_url:
            raise DocumentRenderFailure("document renderer is not configured")

        timeout = httpx.Timeout(self.timeout, connect=5.0)
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.post(
                    f"{self.base_url}/render/{template_id}",
                    json={k: str(v) for k, v in context.items()},
                )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentRenderFailure(f"render of {template_id} failed: {e}") from e

        if not resp.content:
            raise DocumentRenderFailure(f"render of {template_id} returned an empty document")
        return resp.content
