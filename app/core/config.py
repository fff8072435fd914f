from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./endgame.db"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # How condition groups combine into an event decision: "any" or "all".
    EVENT_GROUP_POLICY: Literal["any", "all"] = "any"
    # What the orchestration layer does with a failed condition check:
    # "log" keeps the primary action alive, "raise" escalates.
    CONDITION_CHECK_FAILURES: Literal["log", "raise"] = "log"
    TIME_CHECK_ON_EVENT_CREATE: bool = True

    # Share of the bank paid out per event type (the rest is commission).
    PAYOUT_DONATION: Decimal = Decimal("0.96")
    PAYOUT_FUNDRAISING: Decimal = Decimal("0.98")
    PAYOUT_JACKPOT: Decimal = Decimal("0.90")
    JACKPOT_RANDOMNESS_COEFFICIENT: Decimal = Decimal("0.2")
    JACKPOT_MINIMUM_BASE_TICKETS: int = 5

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
