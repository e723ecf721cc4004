
# routes/webhooks.py
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from app.payments.callbacks import ACK
from schemas import CallbackAck
from services.redaction import redact_text

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])
logger = logging.getLogger("pushpay.webhooks")


@router.post("/mpesa/callback", response_model=CallbackAck)
async def mpesa_callback(req: Request):
    """
    Daraja STK result callback.
    Always 200 + Accepted, whatever happens here, to avoid provider retry storms.
    """
    raw = await req.body()
    payload: Any = None
    try:
        payload = await req.json()
    except Exception:
        logger.warning(
            "webhook_body_unparseable bytes=%s preview=%s",
            len(raw),
            redact_text(raw[:120].decode("utf-8", errors="replace")),
        )

    services = getattr(req.app.state, "services", None)
    if services is None:
        logger.error("webhook_dropped reason=SERVICE_NOT_READY")
        return dict(ACK)

    result = await run_in_threadpool(services.receiver.handle, payload)
    logger.info(
        "webhook_received provider=MPESA checkout_request_id=%s applied=%s outcome=%s reason=%s",
        result.checkout_request_id,
        result.applied,
        result.outcome,
        result.reason,
    )
    return dict(ACK)
