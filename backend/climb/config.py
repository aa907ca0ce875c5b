"""Application configuration for the climb game server."""
from decimal import Decimal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings, overridable through CLIMB_* environment variables."""

    model_config = ConfigDict(env_prefix="CLIMB_")

    # Server
    debug: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Protocol
    protocol_version: str = "1.0"
    game_label: str = "KICKS CLIMB"
    token_symbol: str = "KICKS"

    # Board shape
    total_steps: int = 100
    board_columns: int = 10
    finish_multiplier: Decimal = Decimal("20")
    max_multiplier: Decimal = Decimal("11")

    # Hazard placement
    hazard_count: int = 18
    hazard_min_position: int = 5
    hazard_max_position: int = 95
    hazard_min_path_gap: int = 3
    hazard_min_visual_gap: int = 2
    hazard_relaxed_path_gap: int = 2

    # Bonus chest: fraction of the wager granted per bonus unit
    bonus_chest_rate: Decimal = Decimal("0.05")

    # Wagers and moves
    min_wager: Decimal = Decimal("1")
    max_wager: Decimal = Decimal("1000000")
    max_steps_per_move: int = 100
    allow_cashout_at_base_multiplier: bool = True

    # Claims
    claim_nonce_ttl_seconds: int = 300

    # Locking (per-session single writer, per-player stats)
    lock_ttl_seconds: int = 30  # Auto-expire lock after 30s if process crashes
    lock_wait_retries: int = 50
    lock_retry_delay_ms: int = 20

    idempotency_ttl_seconds: int = 3600


settings = Settings()
