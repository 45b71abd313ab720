"""Pytest configuration and fixtures."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session

from insurehub.models import Base, BuyRequest, Client, Payment, Policy


# In-memory SQLite engine for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


def _patch_jsonb_to_json(base):
    """
    Swap JSONB for JSON so the metadata compiles on SQLite.
    Test-only.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    Database session for one test, on a fresh in-memory schema.
    """
    _patch_jsonb_to_json(Base)
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    sessionmaker on a file-backed SQLite database. Each session gets its own
    connection, so two sessions can race on the same rows.
    """
    _patch_jsonb_to_json(Base)
    engine = create_engine(
        f"sqlite:///{tmp_path / 'insurehub-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """Alias of test_session."""
    yield test_session


@pytest.fixture
def make_policy(test_session: Session):
    def _make(**overrides) -> Policy:
        values = {
            "policy_name": "Health Shield",
            "insurance_type": "health",
            "company_name": "Himalayan Life",
            "base_premium": Decimal("10000.00"),
            "coverage_limit": Decimal("500000.00"),
            "company_rating": 4.0,
            "claim_settlement_ratio": 90.0,
            "waiting_period_days": 30,
            "copay_percent": 0,
            "supports_smokers": True,
            "covered_conditions": [],
            "exclusions": [],
            "is_active": True,
        }
        values.update(overrides)
        policy = Policy(**values)
        test_session.add(policy)
        test_session.commit()
        return policy

    return _make


@pytest.fixture
def make_client(test_session: Session):
    def _make(**overrides) -> Client:
        values = {
            "name": "Sita Sharma",
            "email": "sita@example.com",
            "dob": date(1994, 5, 1),
            "is_smoker": False,
            "family_members": 1,
            "pre_existing_conditions": [],
            "coverage_type": "individual",
        }
        values.update(overrides)
        client = Client(**values)
        test_session.add(client)
        test_session.commit()
        return client

    return _make


@pytest.fixture
def make_buy_request(test_session: Session):
    def _make(client: Client, policy: Policy, **overrides) -> BuyRequest:
        values = {
            "user_id": client.id,
            "policy_id": policy.id,
            "email": client.email,
            "status": "pending",
            "billing_cycle": "monthly",
            "calculated_premium": Decimal("12000.00"),
            "cycle_amount": Decimal("1000.00"),
            "renewal_grace_reminders_sent": 0,
        }
        values.update(overrides)
        buy_request = BuyRequest(**values)
        test_session.add(buy_request)
        test_session.commit()
        return buy_request

    return _make


@pytest.fixture
def make_payment(test_session: Session):
    def _make(buy_request: BuyRequest, **overrides) -> Payment:
        values = {
            "buy_request_id": buy_request.id,
            "user_id": buy_request.user_id,
            "policy_id": buy_request.policy_id,
            "amount": buy_request.cycle_amount,
            "currency": "NPR",
            "method": "esewa",
            "status": "pending",
            "meta": {},
            "is_verified": False,
            "failed_notified": False,
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        values.update(overrides)
        payment = Payment(**values)
        test_session.add(payment)
        test_session.commit()
        return payment

    return _make


def pytest_configure(config):
    """Register test markers."""
    config.addinivalue_line("markers", "unit: unit tests (no database)")
    config.addinivalue_line("markers", "integration: tests against the in-memory database")
    config.addinivalue_line("markers", "slow: slow tests (> 1 minute)")
