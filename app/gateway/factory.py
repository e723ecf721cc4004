
# app/gateway/factory.py
from __future__ import annotations

import logging
from typing import Optional

from app.gateway.base import PushPaymentGateway
from app.gateway.config import daraja_config

logger = logging.getLogger("pushpay.gateway")


def build_gateway(settings) -> Optional[PushPaymentGateway]:
    """
    Live Daraja client when credentials are complete, else None
    (the initiator then falls back to simulation).
    """
    cfg = daraja_config(settings)
    if not cfg.configured:
        logger.info(
            "mpesa gateway not configured; env=%s missing=%s",
            cfg.env,
            ",".join(cfg.missing()) or "<none>",
        )
        return None

    from app.gateway.daraja import DarajaGateway

    logger.info("mpesa gateway configured; env=%s shortcode=%s", cfg.env, cfg.shortcode)
    return DarajaGateway(cfg)
