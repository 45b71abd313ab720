from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class Policy(Base):
    """
    A sellable insurance product together with its admin-configured pricing factor table.
    Multipliers left NULL have no effect on price.
    """
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(primary_key=True)
    policy_name: Mapped[str] = mapped_column(Text, nullable=False)
    insurance_type: Mapped[str] = mapped_column(Text, nullable=False, default="health")
    company_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    base_premium: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    coverage_limit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    company_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # 0 ~ 5
    claim_settlement_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # percent
    waiting_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    copay_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    supports_smokers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    covered_conditions: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    exclusions: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Factor table
    age_0_2_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    age_3_17_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    age_18_24_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    age_25_plus_base_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    age_factor_step: Mapped[float | None] = mapped_column(Float, nullable=True)  # per year above 25
    smoker_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    condition_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    family_base_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    family_member_step: Mapped[float | None] = mapped_column(Float, nullable=True)
    region_urban_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    region_semi_urban_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    region_rural_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    bmi_overweight_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    bmi_obese_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    occ_class_2_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    occ_class_3_factor: Mapped[float | None] = mapped_column(Float, nullable=True)
    loyalty_discount_factor: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0.05 = 5% at full tenure

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Client(Base):
    """Registered buyer. BuyerProfile is derived from these columns at request time."""
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_smoker: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    weight_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    height_cm: Mapped[float | None] = mapped_column(Float, nullable=True)
    occupation_class: Mapped[str | None] = mapped_column(Text, nullable=True)  # class_1, class_2, class_3
    region_type: Mapped[str | None] = mapped_column(Text, nullable=True)  # urban, semi_urban, rural
    family_members: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    pre_existing_conditions: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    budget_range: Mapped[str | None] = mapped_column(Text, nullable=True)
    coverage_type: Mapped[str] = mapped_column(Text, nullable=False, default="individual")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class BuyRequest(Base):
    """
    A buyer's commitment to one policy (purchase request).
    cycle_amount is fixed at purchase time and only changed by an explicit admin edit.
    """
    __tablename__ = "buy_requests"
    __table_args__ = (
        UniqueConstraint("user_id", "policy_id", name="uq_buy_requests_user_policy"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id"), nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")  # pending, processing, completed, cancelled
    billing_cycle: Mapped[str] = mapped_column(Text, nullable=False, default="yearly")
    calculated_premium: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    cycle_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    next_renewal_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    renewal_status: Mapped[str | None] = mapped_column(Text, nullable=True)  # active, due, expired
    renewal_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    renewal_grace_reminders_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    renewal_grace_last_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    client: Mapped["Client"] = relationship()
    policy: Mapped["Policy"] = relationship()
    payments: Mapped[list["Payment"]] = relationship(back_populates="buy_request")


class Payment(Base):
    """
    One installment attempt against a buy request.
    is_verified and failed_notified are only ever flipped false -> true by conditional updates.
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_buy_request_verified", "buy_request_id", "is_verified"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    buy_request_id: Mapped[int] = mapped_column(ForeignKey("buy_requests.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="NPR")
    method: Mapped[str | None] = mapped_column(Text, nullable=True)  # esewa, khalti, manual
    provider_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")  # raw gateway status
    meta: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failed_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    buy_request: Mapped["BuyRequest"] = relationship(back_populates="payments")


class RecommendationImpression(Base):
    """
    One row per policy shown in a ranked list. Measurement only, never read back into scoring.
    """
    __tablename__ = "recommendation_impressions"
    __table_args__ = (
        Index("ix_impressions_policy_outcome", "policy_id", "clicked", "purchased"),
        Index("ix_impressions_user_shown", "user_id", "shown_at"),
        Index("ix_impressions_variant", "variant"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based
    match_score: Mapped[float] = mapped_column(Float, nullable=False)
    variant: Mapped[str] = mapped_column(Text, nullable=False, default="control")
    clicked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    purchased: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time_spent_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shown_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    template_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
