# settings.py
from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # DB
    # -----------------------
    # empty -> in-process transaction store (dev/tests)
    DATABASE_URL: str = ""

    # -----------------------
    # M-Pesa Daraja
    # -----------------------
    MPESA_ENV: Literal["sandbox", "production"] = "sandbox"
    MPESA_CONSUMER_KEY: str = ""
    MPESA_CONSUMER_SECRET: str = ""
    MPESA_SHORTCODE: str = ""
    MPESA_PASSKEY: str = ""
    MPESA_CALLBACK_URL: str = ""
    MPESA_TRANSACTION_TYPE: str = "CustomerPayBillOnline"
    MPESA_HTTP_TIMEOUT_S: float = Field(default=20.0, gt=0)

    # -----------------------
    # Simulation / lifecycle
    # -----------------------
    SIMULATION_ENABLED: bool = True
    SIMULATION_DELAY_S: float = Field(default=10.0, ge=0)
    PENDING_TTL_S: float = Field(default=120.0, gt=0)
    WATCHDOG_INTERVAL_S: float = Field(default=15.0, gt=0)

    # client-side polling defaults
    POLL_INTERVAL_S: float = Field(default=2.0, gt=0)
    POLL_MAX_WAIT_S: float = Field(default=120.0, gt=0)

    # internal retry of callbacks whose persistence failed
    CALLBACK_RETRY_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    CALLBACK_RETRY_BASE_S: float = Field(default=5.0, gt=0)


settings = Settings()


_STRICT_ENVS = {"staging", "prod", "production"}


def validate_env_settings() -> None:
    """
    Fail fast on deploy misconfiguration.
    dev/test may run with no database and no gateway (simulation mode).
    """
    env = (settings.ENV or "dev").strip().lower()
    if env not in _STRICT_ENVS:
        return

    missing: list[str] = []
    if not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")

    for key in (
        "MPESA_CONSUMER_KEY",
        "MPESA_CONSUMER_SECRET",
        "MPESA_SHORTCODE",
        "MPESA_PASSKEY",
        "MPESA_CALLBACK_URL",
    ):
        if not (getattr(settings, key, "") or "").strip():
            missing.append(key)

    if missing:
        raise RuntimeError(
            f"Settings validation failed for ENV={env}. Missing required env vars: "
            + ", ".join(missing)
        )
