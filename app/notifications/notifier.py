
# app/notifications/notifier.py
from __future__ import annotations

import logging
from typing import Protocol

from app.transactions.model import Transaction
from services.redaction import mask_phone, redact_text

logger = logging.getLogger("pushpay.notifications")


class Notifier(Protocol):
    def payment_succeeded(self, tx: Transaction) -> None: ...


class LoggingNotifier:
    """Default business notification: one redacted log line per settled payment."""

    def payment_succeeded(self, tx: Transaction) -> None:
        logger.info(
            "payment_succeeded checkout_request_id=%s amount=%s receipt=%s phone=%s email=%s simulated=%s",
            tx.checkout_request_id,
            tx.paid_amount if tx.paid_amount is not None else tx.amount,
            tx.receipt_number,
            mask_phone(tx.paid_phone or tx.phone),
            redact_text(tx.email),
            tx.simulated,
        )


def notify_success(notifier: Notifier | None, tx: Transaction) -> None:
    if notifier is None:
        return
    try:
        notifier.payment_succeeded(tx)
    except Exception:
        logger.exception("notifier_failed checkout_request_id=%s", tx.checkout_request_id)
