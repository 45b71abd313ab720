"""
RenewalSweeper integration tests

active -> due -> expired transitions and the reminder notices, including repeated runs.
"""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from insurehub.models import BuyRequest
from insurehub.services.notifications import POLICY_EXPIRED, RENEWAL_REMINDER, NotificationDispatcher
from insurehub.services.renewal.sweeper import RenewalSweeper

RENEWAL_DATE = date(2024, 6, 15)


@pytest.fixture
def dispatcher():
    mock = Mock(spec=NotificationDispatcher)
    mock.dispatch.return_value = True
    return mock


@pytest.fixture
def sweeper(test_session, dispatcher):
    return RenewalSweeper(test_session, dispatcher, reminder_days=5, grace_days=7, grace_reminder_day=2)


@pytest.fixture
def active_request(make_client, make_policy, make_buy_request):
    return make_buy_request(
        make_client(),
        make_policy(policy_name="Family Floater"),
        status="completed",
        next_renewal_date=RENEWAL_DATE,
        renewal_status="active",
    )


def _reload(session, buy_request_id) -> BuyRequest:
    session.expire_all()
    return session.get(BuyRequest, buy_request_id)


@pytest.mark.integration
def test_nothing_happens_outside_reminder_window(sweeper, dispatcher, active_request):
    result = sweeper.run(today=RENEWAL_DATE - timedelta(days=6))
    assert result.as_dict() == {"reminded": 0, "due": 0, "grace_reminded": 0, "expired": 0}
    dispatcher.dispatch.assert_not_called()


@pytest.mark.integration
def test_upcoming_reminder_sent_once(test_session, sweeper, dispatcher, active_request):
    first = sweeper.run(today=RENEWAL_DATE - timedelta(days=5))
    second = sweeper.run(today=RENEWAL_DATE - timedelta(days=3))

    assert first.reminded == 1
    assert second.reminded == 0
    assert dispatcher.dispatch.call_count == 1
    user_id, template_id, context = dispatcher.dispatch.call_args.args
    assert template_id == RENEWAL_REMINDER
    assert context["policy_name"] == "Family Floater"
    assert dispatcher.dispatch.call_args.kwargs["email"] == "sita@example.com"
    assert _reload(test_session, active_request.id).renewal_reminder_sent_at is not None


@pytest.mark.integration
def test_due_on_renewal_date(test_session, sweeper, active_request):
    result = sweeper.run(today=RENEWAL_DATE)
    again = sweeper.run(today=RENEWAL_DATE)

    assert result.due == 1
    assert again.due == 0
    assert _reload(test_session, active_request.id).renewal_status == "due"


@pytest.mark.integration
def test_single_grace_reminder(test_session, sweeper, dispatcher, active_request):
    sweeper.run(today=RENEWAL_DATE)
    day_one = sweeper.run(today=RENEWAL_DATE + timedelta(days=1))
    day_two = sweeper.run(today=RENEWAL_DATE + timedelta(days=2))
    day_three = sweeper.run(today=RENEWAL_DATE + timedelta(days=3))

    assert (day_one.grace_reminded, day_two.grace_reminded, day_three.grace_reminded) == (0, 1, 0)
    stored = _reload(test_session, active_request.id)
    assert stored.renewal_grace_reminders_sent == 1
    assert stored.renewal_grace_last_sent_at is not None
    # upcoming reminder on the renewal date, then the grace reminder
    calls = dispatcher.dispatch.call_args_list
    assert [c.args[1] for c in calls] == [RENEWAL_REMINDER, RENEWAL_REMINDER]
    assert "grace_days" not in calls[0].args[2]
    assert calls[1].args[2]["grace_days"] == 7


@pytest.mark.integration
def test_reminder_sent_on_renewal_date_before_due(test_session, sweeper, dispatcher, active_request):
    result = sweeper.run(today=RENEWAL_DATE)
    again = sweeper.run(today=RENEWAL_DATE)

    assert (result.reminded, result.due) == (1, 1)
    assert (again.reminded, again.due) == (0, 0)
    assert [c.args[1] for c in dispatcher.dispatch.call_args_list] == [RENEWAL_REMINDER]
    stored = _reload(test_session, active_request.id)
    assert stored.renewal_status == "due"
    assert stored.renewal_reminder_sent_at is not None


@pytest.mark.integration
def test_expires_after_grace_window(test_session, sweeper, dispatcher, active_request):
    sweeper.run(today=RENEWAL_DATE)
    still_due = sweeper.run(today=RENEWAL_DATE + timedelta(days=7))
    expired = sweeper.run(today=RENEWAL_DATE + timedelta(days=8))
    again = sweeper.run(today=RENEWAL_DATE + timedelta(days=9))

    assert still_due.expired == 0
    assert expired.expired == 1
    assert again.expired == 0
    assert _reload(test_session, active_request.id).renewal_status == "expired"
    templates = [c.args[1] for c in dispatcher.dispatch.call_args_list]
    assert templates.count(POLICY_EXPIRED) == 1


@pytest.mark.integration
def test_missed_sweeps_catch_up_in_one_run(test_session, sweeper, dispatcher, active_request):
    result = sweeper.run(today=RENEWAL_DATE + timedelta(days=30))

    assert result.due == 1
    assert result.expired == 1
    assert result.grace_reminded == 0
    assert _reload(test_session, active_request.id).renewal_status == "expired"


@pytest.mark.integration
def test_soft_deleted_requests_skipped(test_session, sweeper, dispatcher, active_request):
    active_request.deleted_at = datetime.now(timezone.utc)
    test_session.commit()

    result = sweeper.run(today=RENEWAL_DATE + timedelta(days=30))

    assert result.as_dict() == {"reminded": 0, "due": 0, "grace_reminded": 0, "expired": 0}
    dispatcher.dispatch.assert_not_called()
