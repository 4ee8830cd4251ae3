"""Application configuration via Pydantic Settings."""

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./estate_platform.db"

    # Auth / JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Paystack
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    payment_reference_prefix: str = "ES"
    currency: str = "NGN"

    # Email (SendGrid)
    sendgrid_api_key: str = ""
    mail_from: str = "no-reply@estateplatform.ng"
    mail_from_name: str = "Estate Platform"

    # Inspection fees (whole currency units)
    inspection_fee_default: int = 5000
    inspection_fee_min: int = 1000
    inspection_fee_max: int = 50000

    # Document verification fee per document (whole currency units)
    document_verification_fee: int = 20000

    # Subscriptions
    subscription_warning_days: int = 3
    subscription_sweep_interval_minutes: int = 60
    seed_default_plans: bool = True

    # Document verification mailboxes, keyed by document type
    verifier_default_email: str = "verification@estateplatform.ng"
    verifier_survey_plan_email: str = "survey@estateplatform.ng"
    verifier_land_title_email: str = "landregistry@estateplatform.ng"

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    client_link: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


@dataclass(frozen=True)
class EngineConfig:
    """Explicit configuration handed to the workflow, payment and monitor services."""

    client_link: str = "http://localhost:3000"
    currency: str = "NGN"
    inspection_fee_default: int = 5000
    inspection_fee_min: int = 1000
    inspection_fee_max: int = 50000
    document_verification_fee: int = 20000
    payment_reference_prefix: str = "ES"
    subscription_warning_days: int = 3
    verifier_default_email: str = "verification@estateplatform.ng"
    verifier_mailboxes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            client_link=settings.client_link.rstrip("/"),
            currency=settings.currency,
            inspection_fee_default=settings.inspection_fee_default,
            inspection_fee_min=settings.inspection_fee_min,
            inspection_fee_max=settings.inspection_fee_max,
            document_verification_fee=settings.document_verification_fee,
            payment_reference_prefix=settings.payment_reference_prefix,
            subscription_warning_days=settings.subscription_warning_days,
            verifier_default_email=settings.verifier_default_email,
            verifier_mailboxes={
                "survey-plan": settings.verifier_survey_plan_email,
                "certificate-of-occupancy": settings.verifier_land_title_email,
                "deed-of-assignment": settings.verifier_land_title_email,
                "governors-consent": settings.verifier_land_title_email,
            },
        )

    @property
    def payment_callback_url(self) -> str:
        return f"{self.client_link}/payment-verification"

    @property
    def subscription_retry_url(self) -> str:
        return f"{self.client_link}/agent/subscriptions"

    def public_listing_url(self, slug: str) -> str:
        return f"{self.client_link}/agents/{slug}"

    def document_review_url(self, document_id: str) -> str:
        return f"{self.client_link}/third-party/verify-document/{document_id}"

    def clamp_inspection_fee(self, fee: int | float) -> int:
        """Clamp a fee into the [min, max] band."""
        return int(min(self.inspection_fee_max, max(self.inspection_fee_min, round(fee))))

    def verifier_email_for(self, document_type: str) -> str:
        key = (document_type or "").strip().lower().replace(" ", "-").replace("_", "-")
        return self.verifier_mailboxes.get(key, self.verifier_default_email)
