
# app/payments/watchdog.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from app.errors import PersistenceFailure
from app.scheduling import Clock, Handle, Scheduler
from app.transactions.model import EXPIRED, Resolution
from app.transactions.store import TransactionStore
from services import metrics

logger = logging.getLogger("pushpay.watchdog")

PENDING_TTL_SECONDS = 120.0
SWEEP_INTERVAL_SECONDS = 15.0
EXPIRED_RESULT_DESC = "Expired: no callback received"


class ExpiryWatchdog:
    """Moves transactions left Pending past the TTL to Expired."""

    def __init__(
        self,
        store: TransactionStore,
        clock: Clock,
        *,
        ttl_s: float = PENDING_TTL_SECONDS,
        batch_size: int = 100,
    ):
        self.store = store
        self.clock = clock
        self.ttl_s = ttl_s
        self.batch_size = batch_size
        self._handle: Optional[Handle] = None

    def sweep_once(self) -> list[str]:
        now = self.clock.now()
        cutoff = now - timedelta(seconds=self.ttl_s)
        expired: list[str] = []

        for tx in self.store.list_pending_before(cutoff, limit=self.batch_size):
            resolution = Resolution(status=EXPIRED, result_code=None, result_desc=EXPIRED_RESULT_DESC)
            # a callback may have won the race since the scan; then this is a no-op
            if self.store.resolve_if_pending(tx.checkout_request_id, resolution, at=now) is not None:
                expired.append(tx.checkout_request_id)
                logger.info(
                    "transaction_expired checkout_request_id=%s age_s=%.0f",
                    tx.checkout_request_id,
                    (now - tx.created_at).total_seconds(),
                )

        if expired:
            metrics.increment_expiration(len(expired))
        return expired

    def _tick(self) -> None:
        try:
            self.sweep_once()
        except PersistenceFailure as exc:
            logger.error("watchdog_sweep_failed error=%s", exc.message)

    def start(self, scheduler: Scheduler, interval_s: float = SWEEP_INTERVAL_SECONDS) -> Handle:
        if self._handle is None:
            self._handle = scheduler.call_every(interval_s, self._tick, name="expiry-watchdog")
            logger.info("watchdog_started ttl_s=%s interval_s=%s", self.ttl_s, interval_s)
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def run_forever(self, interval_s: float = SWEEP_INTERVAL_SECONDS, *, max_sweeps: Optional[int] = None) -> int:
        """Blocking loop for the standalone daemon. Returns total expired."""
        total = 0
        sweeps = 0
        while max_sweeps is None or sweeps < max_sweeps:
            try:
                total += len(self.sweep_once())
            except PersistenceFailure as exc:
                logger.error("watchdog_sweep_failed error=%s", exc.message)
            sweeps += 1
            if max_sweeps is None or sweeps < max_sweeps:
                self.clock.sleep(interval_s)
        return total
