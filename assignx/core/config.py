from functools import lru_cache
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "AssignX Lifecycle & Settlement"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # ─────────── JWT / AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── DISTRIBUTION (basis points, must total 10000) ───────────
    worker_share_bps: int = 6500
    intermediary_share_bps: int = 1500
    platform_share_bps: int = 2000

    # ─────────── QUOTES / PRICING (paise) ───────────
    max_quote_paise: int = 10_000_000
    price_per_word_paise: int = 50
    minimum_quote_paise: int = 50_000
    urgency_24h_multiplier: float = 1.5
    urgency_48h_multiplier: float = 1.3
    urgency_72h_multiplier: float = 1.15

    # ─────────── AUTO-APPROVAL ───────────
    auto_approval_hours: int = 72
    timer_backend: str = "sweep"  # sweep | in_process
    timer_sweep_batch_size: int = 200

    # ─────────── REFUND PENALTY (basis points of the client quote) ───────────
    refund_penalty_worker_bps: int = 0
    refund_penalty_intermediary_bps: int = 0

    # ─────────── WALLET PAYOUTS (paise / basis points) ───────────
    payout_minimum_paise: int = 50_000
    payout_processing_fee_bps: int = 0

    # ─────────── PAYMENT GATEWAY ───────────
    payment_gateway_key_id: str = "rzp_test_local"
    payment_gateway_key_secret: str = "change-me"

    @model_validator(mode="after")
    def _check_rates(self) -> "Settings":
        total = self.worker_share_bps + self.intermediary_share_bps + self.platform_share_bps
        if total != 10000:
            raise ValueError(f"Distribution rates must total 10000 bps, got {total}.")
        if min(self.worker_share_bps, self.intermediary_share_bps, self.platform_share_bps) < 0:
            raise ValueError("Distribution rates must be non-negative.")
        if self.refund_penalty_worker_bps + self.refund_penalty_intermediary_bps > 10000:
            raise ValueError("Refund penalty shares cannot exceed the full quote.")
        if not 0 <= self.payout_processing_fee_bps <= 10000:
            raise ValueError("Payout processing fee must be between 0 and 10000 bps.")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
