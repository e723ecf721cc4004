
# app/payments/retry_queue.py
from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from app.errors import PersistenceFailure
from app.payments.callbacks import CallbackResult, ParsedCallback
from app.scheduling import Scheduler
from services import metrics

logger = logging.getLogger("pushpay.webhooks")

MAX_ATTEMPTS = 5
BASE_BACKOFF_SECONDS = 5.0


def backoff_delay(attempt: int, base_s: float = BASE_BACKOFF_SECONDS) -> float:
    # 5, 10, 20, 40, 80...
    return base_s * (2 ** max(0, attempt - 1))


class CallbackRetryQueue:
    """
    Re-applies callbacks whose persistence failed, off the request path.
    `apply` is CallbackReceiver.apply; it is idempotent, so a retry that
    races a later delivery of the same callback is harmless.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        apply: Callable[[ParsedCallback], CallbackResult],
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_s: float = BASE_BACKOFF_SECONDS,
    ):
        self.scheduler = scheduler
        self._apply = apply
        self.max_attempts = max_attempts
        self.base_s = base_s
        self._lock = Lock()
        self._in_flight: set[str] = set()

    def enqueue(self, parsed: ParsedCallback) -> bool:
        """Schedule the first retry. Returns False if this id is already queued."""
        with self._lock:
            if parsed.checkout_request_id in self._in_flight:
                return False
            self._in_flight.add(parsed.checkout_request_id)
        self._schedule(parsed, attempt=1)
        return True

    def pending(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def _schedule(self, parsed: ParsedCallback, *, attempt: int) -> None:
        delay = backoff_delay(attempt, self.base_s)
        logger.info(
            "callback_retry_scheduled checkout_request_id=%s attempt=%s delay_s=%s",
            parsed.checkout_request_id,
            attempt,
            delay,
        )
        self.scheduler.call_later(
            delay,
            lambda: self._run(parsed, attempt),
            name=f"callback-retry-{parsed.checkout_request_id}",
        )

    def _done(self, parsed: ParsedCallback) -> None:
        with self._lock:
            self._in_flight.discard(parsed.checkout_request_id)

    def _run(self, parsed: ParsedCallback, attempt: int) -> None:
        try:
            result = self._apply(parsed)
        except PersistenceFailure as exc:
            if attempt >= self.max_attempts:
                metrics.increment_callback_retry("dropped")
                logger.error(
                    "callback_retry_exhausted checkout_request_id=%s attempts=%s error=%s",
                    parsed.checkout_request_id,
                    attempt,
                    exc.message,
                )
                self._done(parsed)
                return
            metrics.increment_callback_retry("failed")
            self._schedule(parsed, attempt=attempt + 1)
            return
        except Exception:
            metrics.increment_callback_retry("dropped")
            logger.exception("callback_retry_error checkout_request_id=%s", parsed.checkout_request_id)
            self._done(parsed)
            return

        metrics.increment_callback_retry("applied" if result.applied else "noop")
        logger.info(
            "callback_retry_done checkout_request_id=%s attempt=%s outcome=%s",
            parsed.checkout_request_id,
            attempt,
            result.outcome,
        )
        self._done(parsed)
