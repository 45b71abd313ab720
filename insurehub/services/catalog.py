from sqlalchemy import select
from sqlalchemy.orm import Session

from insurehub.errors import NotFound
from insurehub.models import Client, Policy
from insurehub.services.pricing.factors import validate_factor_table


def save_policy(session: Session, policy: Policy) -> Policy:
    """Admin save: the factor table is validated before anything is written."""
    validate_factor_table(policy)
    session.add(policy)
    session.commit()
    return policy


def get_policy(session: Session, policy_id: int) -> Policy:
    policy = session.get(Policy, policy_id)
    if policy is None:
        raise NotFound(f"Policy {policy_id} not found")
    return policy


def get_client(session: Session, client_id: int) -> Client:
    client = session.get(Client, client_id)
    if client is None:
        raise NotFound(f"Client {client_id} not found")
    return client


def active_policies(session: Session, policy_ids: list[int] | None = None, insurance_type: str | None = None) -> list[Policy]:
    stmt = select(Policy).where(Policy.is_active.is_(True))
    if policy_ids:
        stmt = stmt.where(Policy.id.in_(policy_ids))
    if insurance_type:
        stmt = stmt.where(Policy.insurance_type == insurance_type)
    return list(session.execute(stmt.order_by(Policy.id)).scalars().all())
