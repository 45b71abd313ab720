import pytest

from insurehub.services.payments.gateway import GatewayOutcome, classify_status


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["success", "PAID", " completed ", "Complete"])
def test_success_statuses(raw):
    assert classify_status(raw) is GatewayOutcome.SUCCESS


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["failed", "Cancelled", "canceled", "declined", "error"])
def test_failure_statuses(raw):
    assert classify_status(raw) is GatewayOutcome.FAILURE


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["pending", "initiated", "", None])
def test_everything_else_pending(raw):
    assert classify_status(raw) is GatewayOutcome.PENDING
