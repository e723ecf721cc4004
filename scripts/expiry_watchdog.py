# scripts/expiry_watchdog.py
from __future__ import annotations

import logging
import os

from app.container import build_store
from app.payments.watchdog import ExpiryWatchdog
from app.scheduling import SystemClock
from settings import settings, validate_env_settings


logger = logging.getLogger("pushpay.watchdog")


def _interval_seconds() -> float:
    raw = os.getenv("WATCHDOG_INTERVAL_S") or str(settings.WATCHDOG_INTERVAL_S)
    try:
        value = float(raw)
    except ValueError:
        return 15.0
    return max(1.0, value)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    validate_env_settings()

    store, pool = build_store(settings)
    if pool is None:
        # an in-memory store here would be a different process's memory
        logger.error("Expiry watchdog needs DATABASE_URL; nothing to sweep")
        raise SystemExit(2)

    interval = _interval_seconds()
    watchdog = ExpiryWatchdog(store, SystemClock(), ttl_s=settings.PENDING_TTL_S)
    logger.info("Expiry watchdog starting; ttl=%ss interval=%ss", settings.PENDING_TTL_S, interval)

    try:
        watchdog.run_forever(interval)
    except KeyboardInterrupt:
        logger.info("Expiry watchdog exiting")
    finally:
        pool.close()


if __name__ == "__main__":
    main()
