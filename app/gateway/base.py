
# app/gateway/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class StkPushRequest:
    phone: str  # canonical 2547XXXXXXXX
    amount: int
    account_reference: str
    description: str


@dataclass(frozen=True)
class StkPushResult:
    checkout_request_id: str
    merchant_request_id: str
    customer_message: Optional[str] = None
    response: Optional[dict[str, Any]] = None


class PushPaymentGateway(Protocol):
    name: str

    def stk_push(self, request: StkPushRequest) -> StkPushResult:
        """Raises GatewayUnavailable on any failure."""
        ...
