from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    hmac_secret: str = "test-hmac-secret"
    api_key: str = "test-api-key"
    trusted_proxies: list[str] = Field(
        default_factory=lambda: ["127.0.0.1", "testclient"]
    )
    rate_limit_ip_per_min: int = Field(60, alias="RATE_LIMIT_IP_PER_MIN")
    rate_limit_user_per_min: int = Field(240, alias="RATE_LIMIT_USER_PER_MIN")

    database_url: str = Field("sqlite:////tmp/kudos_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")

    weekly_point_cap: int = Field(500, alias="WEEKLY_POINT_CAP", ge=0)
    like_cost: int = Field(2, alias="LIKE_COST", gt=0)
    like_sender_credit: int = Field(1, alias="LIKE_SENDER_CREDIT", gt=0)
    like_beneficiary_credit: int = Field(1, alias="LIKE_BENEFICIARY_CREDIT", gt=0)
    max_likes_per_card: int = Field(50, alias="MAX_LIKES_PER_CARD", gt=0)
    like_rng_seed: int | None = Field(None, alias="LIKE_RNG_SEED")

    ledger_timezone: str = Field(
        "Asia/Tokyo",
        alias="LEDGER_TIMEZONE",
        description="Time zone anchoring the Monday 00:00 week boundary",
    )
    weekly_reset_interval_s: int = Field(3600, alias="WEEKLY_RESET_INTERVAL_S")

    ranking_limit: int = Field(10, alias="RANKING_LIMIT", gt=0)
    aggregation_retries: int = Field(3, alias="AGGREGATION_RETRIES", ge=1)
    aggregation_retry_delay_s: float = Field(0.05, alias="AGGREGATION_RETRY_DELAY_S")

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )
