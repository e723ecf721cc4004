
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

PENDING = "PENDING"
SUCCESS = "SUCCESS"
FAILED = "FAILED"
EXPIRED = "EXPIRED"

STATUSES = (PENDING, SUCCESS, FAILED, EXPIRED)
TERMINAL_STATUSES = (SUCCESS, FAILED, EXPIRED)

# wire representation used by the status endpoint
STATUS_LABELS = {
    PENDING: "Pending",
    SUCCESS: "Success",
    FAILED: "Failed",
    EXPIRED: "Expired",
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class Resolution:
    """Fields written by the single Pending -> terminal transition."""

    status: str
    result_code: Optional[int]
    result_desc: Optional[str]
    receipt_number: Optional[str] = None
    paid_amount: Optional[int] = None
    paid_phone: Optional[str] = None
    transaction_date: Optional[str] = None


@dataclass(frozen=True)
class Transaction:
    checkout_request_id: str
    merchant_request_id: str
    phone: str
    email: str
    amount: int
    status: str
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    result_code: Optional[int] = None
    result_desc: Optional[str] = None
    receipt_number: Optional[str] = None
    paid_amount: Optional[int] = None
    paid_phone: Optional[str] = None
    transaction_date: Optional[str] = None
    simulated: bool = False

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def resolved(self, resolution: Resolution, *, at: datetime) -> "Transaction":
        return replace(
            self,
            status=resolution.status,
            result_code=resolution.result_code,
            result_desc=resolution.result_desc,
            receipt_number=resolution.receipt_number,
            paid_amount=resolution.paid_amount,
            paid_phone=resolution.paid_phone,
            transaction_date=resolution.transaction_date,
            updated_at=at,
        )

    def status_view(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "checkoutRequestId": self.checkout_request_id,
            "status": STATUS_LABELS[self.status],
        }
        if self.result_code is not None:
            out["resultCode"] = self.result_code
        if self.result_desc is not None:
            out["resultDesc"] = self.result_desc
        if self.receipt_number is not None:
            out["receiptNumber"] = self.receipt_number
        return out
