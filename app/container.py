
# app/container.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.gateway.base import PushPaymentGateway
from app.gateway.factory import build_gateway
from app.notifications.notifier import LoggingNotifier, Notifier
from app.payments.callbacks import CallbackReceiver
from app.payments.initiator import PaymentInitiator
from app.payments.retry_queue import CallbackRetryQueue
from app.payments.watchdog import ExpiryWatchdog
from app.scheduling import Clock, Scheduler, SystemClock, ThreadScheduler
from app.transactions.store import InMemoryTransactionStore, PostgresTransactionStore, TransactionStore
from db import PgPool

logger = logging.getLogger("pushpay.app")

# "build from settings" marker; None means "explicitly no gateway"
UNSET: Any = object()


@dataclass
class PaymentServices:
    store: TransactionStore
    gateway: Optional[PushPaymentGateway]
    clock: Clock
    scheduler: Scheduler
    receiver: CallbackReceiver
    retry_queue: CallbackRetryQueue
    initiator: PaymentInitiator
    watchdog: ExpiryWatchdog
    watchdog_interval_s: float
    pool: Optional[PgPool] = None

    @property
    def gateway_mode(self) -> str:
        return self.initiator.mode

    def start(self) -> None:
        self.watchdog.start(self.scheduler, self.watchdog_interval_s)

    def close(self) -> None:
        self.watchdog.stop()
        self.scheduler.shutdown()
        if self.pool is not None:
            self.pool.close()


def build_store(settings) -> tuple[TransactionStore, Optional[PgPool]]:
    dsn = (settings.DATABASE_URL or "").strip()
    if not dsn:
        logger.info("transaction store: in-memory (DATABASE_URL not set)")
        return InMemoryTransactionStore(), None
    pool = PgPool(dsn)
    logger.info("transaction store: postgres")
    return PostgresTransactionStore(pool), pool


def build_services(
    settings,
    *,
    store: Optional[TransactionStore] = None,
    gateway: Any = UNSET,
    scheduler: Optional[Scheduler] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
) -> PaymentServices:
    pool: Optional[PgPool] = None
    if store is None:
        store, pool = build_store(settings)
    if gateway is UNSET:
        gateway = build_gateway(settings)

    clock = clock or SystemClock()
    scheduler = scheduler or ThreadScheduler()
    notifier = notifier or LoggingNotifier()

    receiver = CallbackReceiver(store, clock, notifier=notifier)
    retry_queue = CallbackRetryQueue(
        scheduler,
        receiver.apply,
        max_attempts=settings.CALLBACK_RETRY_MAX_ATTEMPTS,
        base_s=settings.CALLBACK_RETRY_BASE_S,
    )
    receiver.retry_queue = retry_queue

    initiator = PaymentInitiator(
        store,
        gateway,
        clock=clock,
        scheduler=scheduler,
        receiver=receiver,
        simulation_enabled=settings.SIMULATION_ENABLED,
        simulation_delay_s=settings.SIMULATION_DELAY_S,
    )
    watchdog = ExpiryWatchdog(store, clock, ttl_s=settings.PENDING_TTL_S)

    return PaymentServices(
        store=store,
        gateway=gateway,
        clock=clock,
        scheduler=scheduler,
        receiver=receiver,
        retry_queue=retry_queue,
        initiator=initiator,
        watchdog=watchdog,
        watchdog_interval_s=settings.WATCHDOG_INTERVAL_S,
        pool=pool,
    )
