# scripts/smoke_payment_flow.py
"""
Initiate a payment against a running API and poll until it settles.

  PUSHPAY_BASE_URL=http://localhost:8000 SMOKE_PHONE=0712345678 python -m scripts.smoke_payment_flow
"""
from __future__ import annotations

import os
import sys

import httpx

from app.gateway.http import HttpClient
from app.payments.poller import HttpStatusFetcher, StatusPoller
from app.scheduling import SystemClock
from services.redaction import redact_dict
from settings import settings


def die(message, code=1):
    print(message)
    sys.exit(code)


def step(message):
    print("\n==> " + message)


def main() -> int:
    base_url = (os.getenv("PUSHPAY_BASE_URL") or "http://localhost:8000").rstrip("/")
    payload = {
        "phone": os.getenv("SMOKE_PHONE", "254712345678"),
        "amount": int(os.getenv("SMOKE_AMOUNT", "1")),
        "email": os.getenv("SMOKE_EMAIL", "smoke@example.com"),
        "description": "Smoke test",
    }
    http = HttpClient(timeout_s=30)

    step("Initiate payment")
    try:
        resp = http.post(base_url + "/v1/payments/initiate", headers={}, json_body=payload)
    except httpx.HTTPError as exc:
        die("Request failed: %s" % exc)
    if resp.status_code != 200 or not (resp.json or {}).get("success"):
        die("HTTP %s %s" % (resp.status_code, redact_dict(resp.json or {"body": resp.text})))

    checkout_id = resp.json["checkoutRequestId"]
    print("checkoutRequestId=%s" % checkout_id)

    step("Poll status")
    poller = StatusPoller(
        HttpStatusFetcher(base_url, http),
        SystemClock(),
        interval_s=settings.POLL_INTERVAL_S,
        max_wait_s=settings.POLL_MAX_WAIT_S,
    )
    result = poller.poll(checkout_id)
    http.close()

    if result.outcome == "timeout":
        die("No terminal status after %.0fs (last=%s)" % (result.waited_s, result.status), code=2)

    print("status=%s attempts=%s view=%s" % (result.status, result.attempts, redact_dict(result.view or {})))
    return 0 if result.status == "Success" else 1


if __name__ == "__main__":
    sys.exit(main())
