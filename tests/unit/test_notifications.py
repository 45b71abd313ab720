"""
NotificationDispatcher / DocumentRenderer unit tests (httpx mocked).
"""
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from sqlalchemy.orm import Session

from insurehub.errors import DocumentRenderFailure
from insurehub.models import Notification
from insurehub.services.notifications import (
    PAYMENT_FAILED,
    RENEWAL_REMINDER,
    DocumentRenderer,
    NotificationDispatcher,
    render_message,
)


@pytest.fixture
def mock_db():
    return Mock(spec=Session)


def _mock_client(response=None, error=None):
    client = MagicMock()
    if error is not None:
        client.post.side_effect = error
    else:
        client.post.return_value = response
    client_cls = MagicMock()
    client_cls.return_value.__enter__.return_value = client
    return client_cls, client


@pytest.mark.unit
def test_render_message_fills_placeholders():
    title, message = render_message(PAYMENT_FAILED, {"policy_name": "Health Shield", "reason": "card declined"})
    assert title == "Payment failed"
    assert "Health Shield" in message
    assert "card declined" in message


@pytest.mark.unit
def test_render_message_tolerates_missing_values():
    _, message = render_message(RENEWAL_REMINDER, {"policy_name": "Health Shield", "next_renewal_date": None})
    assert "renews on -" in message


@pytest.mark.unit
def test_dispatch_without_email_stores_in_app_only(mock_db):
    dispatcher = NotificationDispatcher(mock_db, webhook_url="https://mail.example.com/send")
    with patch("insurehub.services.notifications.httpx.Client") as client_cls:
        assert dispatcher.dispatch(7, RENEWAL_REMINDER, {"policy_name": "Health Shield"}) is True

    client_cls.assert_not_called()
    stored = mock_db.add.call_args[0][0]
    assert isinstance(stored, Notification)
    assert stored.user_id == 7
    assert stored.template_id == RENEWAL_REMINDER
    mock_db.commit.assert_called_once()


@pytest.mark.unit
def test_dispatch_posts_email_with_attachments(mock_db):
    response = Mock()
    response.raise_for_status.return_value = None
    client_cls, client = _mock_client(response=response)
    dispatcher = NotificationDispatcher(mock_db, webhook_url="https://mail.example.com/send")

    with patch("insurehub.services.notifications.httpx.Client", client_cls):
        ok = dispatcher.dispatch(
            7, RENEWAL_REMINDER, {"policy_name": "Health Shield"},
            email="sita@example.com", attachments={"policy.pdf": b"%PDF"},
        )

    assert ok is True
    payload = client.post.call_args.kwargs["json"]
    assert payload["recipient"] == "sita@example.com"
    assert payload["attachments"] == {"policy.pdf": "JVBERg=="}


@pytest.mark.unit
def test_dispatch_swallows_webhook_failure(mock_db):
    client_cls, _ = _mock_client(error=httpx.ConnectError("refused"))
    dispatcher = NotificationDispatcher(mock_db, webhook_url="https://mail.example.com/send")

    with patch("insurehub.services.notifications.httpx.Client", client_cls):
        ok = dispatcher.dispatch(7, RENEWAL_REMINDER, {}, email="sita@example.com")

    assert ok is False


@pytest.mark.unit
def test_dispatch_swallows_storage_failure(mock_db):
    mock_db.commit.side_effect = RuntimeError("db down")
    dispatcher = NotificationDispatcher(mock_db, webhook_url="")

    assert dispatcher.dispatch(7, RENEWAL_REMINDER, {}) is False
    mock_db.rollback.assert_called_once()


@pytest.mark.unit
def test_renderer_requires_configuration():
    with pytest.raises(DocumentRenderFailure):
        DocumentRenderer(base_url="").render("policy_document", {})


@pytest.mark.unit
def test_renderer_returns_bytes():
    response = Mock(content=b"%PDF-1.4")
    response.raise_for_status.return_value = None
    client_cls, client = _mock_client(response=response)

    with patch("insurehub.services.notifications.httpx.Client", client_cls):
        content = DocumentRenderer(base_url="https://render.example.com/").render("policy_document", {"amount": 1})

    assert content == b"%PDF-1.4"
    assert client.post.call_args.args[0] == "https://render.example.com/render/policy_document"


@pytest.mark.unit
def test_renderer_empty_document_is_failure():
    response = Mock(content=b"")
    response.raise_for_status.return_value = None
    client_cls, _ = _mock_client(response=response)

    with patch("insurehub.services.notifications.httpx.Client", client_cls):
        with pytest.raises(DocumentRenderFailure):
            DocumentRenderer(base_url="https://render.example.com").render("policy_document", {})
