
# app/gateway/config.py
from __future__ import annotations

from dataclasses import dataclass

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"

# Daraja's public sandbox paybill
SANDBOX_SHORTCODE = "174379"


@dataclass(frozen=True)
class DarajaConfig:
    env: str  # "sandbox" | "production"
    base_url: str
    consumer_key: str
    consumer_secret: str
    shortcode: str
    passkey: str
    callback_url: str
    transaction_type: str
    timeout_s: float

    @property
    def configured(self) -> bool:
        return bool(self.consumer_key and self.consumer_secret and self.passkey and self.callback_url and self.shortcode)

    def missing(self) -> list[str]:
        pairs = (
            ("MPESA_CONSUMER_KEY", self.consumer_key),
            ("MPESA_CONSUMER_SECRET", self.consumer_secret),
            ("MPESA_SHORTCODE", self.shortcode),
            ("MPESA_PASSKEY", self.passkey),
            ("MPESA_CALLBACK_URL", self.callback_url),
        )
        return [name for name, value in pairs if not value]


def daraja_config(settings) -> DarajaConfig:
    env = (settings.MPESA_ENV or "sandbox").strip().lower()
    if env == "production":
        base = PRODUCTION_BASE_URL
        shortcode = (settings.MPESA_SHORTCODE or "").strip()
    else:
        env = "sandbox"
        base = SANDBOX_BASE_URL
        shortcode = (settings.MPESA_SHORTCODE or SANDBOX_SHORTCODE).strip()

    return DarajaConfig(
        env=env,
        base_url=base.rstrip("/"),
        consumer_key=(settings.MPESA_CONSUMER_KEY or "").strip(),
        consumer_secret=(settings.MPESA_CONSUMER_SECRET or "").strip(),
        shortcode=shortcode,
        passkey=(settings.MPESA_PASSKEY or "").strip(),
        callback_url=(settings.MPESA_CALLBACK_URL or "").strip(),
        transaction_type=(settings.MPESA_TRANSACTION_TYPE or "CustomerPayBillOnline").strip(),
        timeout_s=float(settings.MPESA_HTTP_TIMEOUT_S),
    )
