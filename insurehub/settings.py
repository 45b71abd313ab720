from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+psycopg://insurehub@/insurehub?host=/var/run/postgresql"

    app_timezone: str = "Asia/Kathmandu"
    currency: str = "NPR"

    # Pricing
    loyalty_tenure_ceiling_years: float = 5.0  # tenure at which the full loyalty discount applies
    guest_range_multiplier: float = 3.0  # guests see [base, base * multiplier]
    default_profile_age: int = 30

    # Matching
    coverage_adequacy_threshold: float = 500000.0  # coverage_limit that scores 100
    max_match_reasons: int = 4
    weight_premium_fit: float = 30.0
    weight_coverage: float = 25.0
    weight_condition_match: float = 20.0
    weight_trust: float = 15.0
    weight_smoker_compatibility: float = 10.0
    recommendation_experiment_salt: str = "recommendation_experiment_v1"

    # Renewal
    renewal_grace_days: int = 7
    renewal_reminder_days: int = 5
    renewal_grace_reminder_day: int = 2  # days past due on which the single grace reminder goes out

    # Outbound collaborators
    notification_webhook_url: str = ""  # empty = in-app only, email is logged
    document_renderer_url: str = ""  # empty = no attachments
    outbound_timeout_seconds: float = 15.0

    def ranking_weights(self) -> dict[str, float]:
        """Default weights for the match-score dimensions"""
        return {
            "premium_fit": self.weight_premium_fit,
            "coverage": self.weight_coverage,
            "condition_match": self.weight_condition_match,
            "trust": self.weight_trust,
            "smoker_compatibility": self.weight_smoker_compatibility,
        }

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("database_url must start with 'postgresql' or 'sqlite'")
        return v

    @field_validator("notification_webhook_url", "document_renderer_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v

    @field_validator(
        "loyalty_tenure_ceiling_years",
        "coverage_adequacy_threshold",
        "outbound_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("guest_range_multiplier")
    @classmethod
    def validate_range_multiplier(cls, v: float) -> float:
        if v < 1:
            raise ValueError("guest_range_multiplier must be at least 1")
        return v

    @field_validator("max_match_reasons")
    @classmethod
    def validate_reason_limit(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("max_match_reasons must be between 1 and 10")
        return v

    @field_validator("renewal_grace_days", "renewal_reminder_days", "renewal_grace_reminder_day")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("day counts must be 0 or greater")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
