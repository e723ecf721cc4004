
# app/payments/poller.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from app.errors import TimeoutExpired
from app.gateway.http import HttpClient
from app.scheduling import Clock
from app.transactions.model import STATUS_LABELS, TERMINAL_STATUSES
from app.transactions.store import TransactionStore

logger = logging.getLogger("pushpay.payments")

POLL_INTERVAL_SECONDS = 2.0
POLL_MAX_WAIT_SECONDS = 120.0

TERMINAL_LABELS = frozenset(STATUS_LABELS[s] for s in TERMINAL_STATUSES)

# checkout_request_id -> status view ({"checkoutRequestId", "status", ...}) or None when unknown
StatusFetch = Callable[[str], Optional[dict[str, Any]]]


@dataclass(frozen=True)
class PollResult:
    checkout_request_id: str
    outcome: str  # terminal | timeout | abandoned
    attempts: int
    waited_s: float
    view: Optional[dict[str, Any]] = None
    timeout: Optional[TimeoutExpired] = None

    @property
    def status(self) -> Optional[str]:
        return (self.view or {}).get("status")

    @property
    def is_terminal(self) -> bool:
        return self.outcome == "terminal"


def store_fetcher(store: TransactionStore) -> StatusFetch:
    def _fetch(checkout_request_id: str) -> Optional[dict[str, Any]]:
        tx = store.get(checkout_request_id)
        return tx.status_view() if tx is not None else None

    return _fetch


class HttpStatusFetcher:
    """Reads GET /v1/payments/{id}/status from a running API."""

    def __init__(self, base_url: str, http: Optional[HttpClient] = None):
        self.base_url = base_url.rstrip("/")
        self.http = http or HttpClient(timeout_s=10)

    def __call__(self, checkout_request_id: str) -> Optional[dict[str, Any]]:
        url = f"{self.base_url}/v1/payments/{checkout_request_id}/status"
        try:
            resp = self.http.get(url)
        except httpx.HTTPError as exc:
            # transient: the poller simply tries again next tick
            logger.warning("status_fetch_error checkout_request_id=%s error=%s", checkout_request_id, type(exc).__name__)
            return None
        if resp.status_code == 404:
            return None
        if resp.status_code != 200 or not isinstance(resp.json, dict):
            logger.warning("status_fetch_unexpected checkout_request_id=%s status=%s", checkout_request_id, resp.status_code)
            return None
        return resp.json


class StatusPoller:
    """
    Read-only, client-paced loop. Never writes: a timeout is reported
    as an inconclusive outcome, not as a failed payment.
    """

    def __init__(
        self,
        fetch: StatusFetch,
        clock: Clock,
        *,
        interval_s: float = POLL_INTERVAL_SECONDS,
        max_wait_s: float = POLL_MAX_WAIT_SECONDS,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.fetch = fetch
        self.clock = clock
        self.interval_s = interval_s
        self.max_wait_s = max_wait_s

    def poll(self, checkout_request_id: str, *, cancel: Optional[threading.Event] = None) -> PollResult:
        started = self.clock.now()
        attempts = 0
        view: Optional[dict[str, Any]] = None

        while True:
            if cancel is not None and cancel.is_set():
                return PollResult(checkout_request_id, "abandoned", attempts, self._elapsed(started), view)

            attempts += 1
            view = self.fetch(checkout_request_id)
            if view is not None and view.get("status") in TERMINAL_LABELS:
                logger.info(
                    "poll_terminal checkout_request_id=%s status=%s attempts=%s",
                    checkout_request_id,
                    view.get("status"),
                    attempts,
                )
                return PollResult(checkout_request_id, "terminal", attempts, self._elapsed(started), view)

            waited = self._elapsed(started)
            remaining = self.max_wait_s - waited
            if remaining <= 0:
                logger.info("poll_timeout checkout_request_id=%s waited_s=%.0f", checkout_request_id, waited)
                return PollResult(
                    checkout_request_id,
                    "timeout",
                    attempts,
                    waited,
                    view,
                    timeout=TimeoutExpired(checkout_request_id, waited),
                )

            self.clock.sleep(min(self.interval_s, remaining))

    def _elapsed(self, started) -> float:
        return (self.clock.now() - started).total_seconds()
