from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from insurehub.models import RecommendationImpression
from insurehub.services.matching.impressions import ImpressionRecorder, record_impressions_task

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def recorder(test_session):
    return ImpressionRecorder(test_session)


@pytest.fixture
def client_and_policies(make_client, make_policy):
    return make_client(), [make_policy(policy_name=f"Plan {i}") for i in range(3)]


@pytest.mark.integration
def test_record_positions_and_variant(test_session, recorder, client_and_policies):
    client, policies = client_and_policies

    rows = recorder.record(client.id, [(p.id, 90.0 - i) for i, p in enumerate(policies)], "weighted_medical", shown_at=NOW)

    assert [r.position for r in rows] == [1, 2, 3]
    stored = test_session.query(RecommendationImpression).order_by(RecommendationImpression.position).all()
    assert [r.policy_id for r in stored] == [p.id for p in policies]
    assert {r.variant for r in stored} == {"weighted_medical"}
    assert not any(r.clicked or r.purchased for r in stored)


@pytest.mark.integration
def test_click_only_updates_last_24_hours(test_session, recorder, client_and_policies):
    client, policies = client_and_policies
    policy_id = policies[0].id
    recorder.record(client.id, [(policy_id, 80.0)], "control", shown_at=NOW - timedelta(hours=30))
    recorder.record(client.id, [(policy_id, 82.0)], "control", shown_at=NOW - timedelta(hours=2))

    assert recorder.mark_clicked(client.id, policy_id, now=NOW) == 1

    test_session.expire_all()
    clicked = {r.match_score: r.clicked for r in test_session.query(RecommendationImpression).all()}
    assert clicked == {80.0: False, 82.0: True}


@pytest.mark.integration
def test_time_spent(test_session, recorder, client_and_policies):
    client, policies = client_and_policies
    recorder.record(client.id, [(policies[1].id, 70.0)], "control", shown_at=NOW - timedelta(minutes=5))

    assert recorder.record_time_spent(client.id, policies[1].id, 45, now=NOW) == 1
    with pytest.raises(ValueError):
        recorder.record_time_spent(client.id, policies[1].id, -1, now=NOW)

    test_session.expire_all()
    assert test_session.query(RecommendationImpression).one().time_spent_seconds == 45


@pytest.mark.integration
def test_purchase_window_is_seven_days(recorder, client_and_policies):
    client, policies = client_and_policies
    policy_id = policies[2].id
    recorder.record(client.id, [(policy_id, 60.0)], "control", shown_at=NOW - timedelta(days=6))
    recorder.record(client.id, [(policy_id, 61.0)], "control", shown_at=NOW - timedelta(days=8))

    assert recorder.mark_purchased(client.id, policy_id, now=NOW) == 1


@pytest.mark.integration
def test_background_task_logs_and_drops_failures(caplog):
    with patch("insurehub.services.matching.impressions.SessionLocal", side_effect=RuntimeError("db down")):
        record_impressions_task(1, [(1, 50.0)], "control")
    assert "Failed to record impressions for user 1" in caplog.text
