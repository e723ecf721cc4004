
# app/payments/callbacks.py
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.errors import DUPLICATE_CALLBACK, InvalidCallback, PersistenceFailure
from app.notifications.notifier import Notifier, notify_success
from app.scheduling import Clock
from app.transactions.model import FAILED, SUCCESS, Resolution, Transaction
from app.transactions.store import TransactionStore
from services import metrics
from services.redaction import redact_text

if TYPE_CHECKING:
    from app.payments.retry_queue import CallbackRetryQueue

logger = logging.getLogger("pushpay.webhooks")

ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}

SIMULATED_RECEIPT_PREFIX = "NLJ7RT61SV"


# ==========================================================
# Daraja callback envelope
# ==========================================================

class _CallbackItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(alias="Name")
    value: Any = Field(default=None, alias="Value")


class _CallbackMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: list[_CallbackItem] = Field(default_factory=list, alias="Item")


class _StkCallback(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    merchant_request_id: str = Field(default="", alias="MerchantRequestID")
    checkout_request_id: str = Field(min_length=1, alias="CheckoutRequestID")
    result_code: int = Field(alias="ResultCode")
    result_desc: str = Field(default="", alias="ResultDesc")
    metadata: Optional[_CallbackMetadata] = Field(default=None, alias="CallbackMetadata")


class _CallbackBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stk_callback: _StkCallback = Field(alias="stkCallback")


class _CallbackEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    body: _CallbackBody = Field(alias="Body")


@dataclass(frozen=True)
class ParsedCallback:
    checkout_request_id: str
    merchant_request_id: str
    result_code: int
    result_desc: str
    amount: Optional[int] = None
    receipt_number: Optional[str] = None
    phone: Optional[str] = None
    transaction_date: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0

    def to_resolution(self) -> Resolution:
        if not self.succeeded:
            return Resolution(status=FAILED, result_code=self.result_code, result_desc=self.result_desc)
        return Resolution(
            status=SUCCESS,
            result_code=self.result_code,
            result_desc=self.result_desc,
            receipt_number=self.receipt_number,
            paid_amount=self.amount,
            paid_phone=self.phone,
            transaction_date=self.transaction_date,
        )


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return int(f) if f.is_integer() else None


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_stk_callback(payload: Any) -> ParsedCallback:
    """
    Validate a Daraja STK callback. Metadata items are read by Name,
    never by position. Raises InvalidCallback.
    """
    if not isinstance(payload, dict):
        raise InvalidCallback("Callback payload must be a JSON object")
    try:
        env = _CallbackEnvelope.model_validate(payload)
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise InvalidCallback(f"Invalid callback payload: {', '.join(fields)}") from exc

    cb = env.body.stk_callback
    meta: dict[str, Any] = {}
    if cb.metadata is not None:
        for item in cb.metadata.items:
            meta[item.name] = item.value

    receipt_number = _as_str(meta.get("MpesaReceiptNumber"))
    if cb.result_code == 0 and receipt_number is None:
        raise InvalidCallback("Success callback without MpesaReceiptNumber")

    return ParsedCallback(
        checkout_request_id=cb.checkout_request_id,
        merchant_request_id=cb.merchant_request_id,
        result_code=cb.result_code,
        result_desc=cb.result_desc,
        amount=_as_int(meta.get("Amount")),
        receipt_number=receipt_number,
        phone=_as_str(meta.get("PhoneNumber")),
        transaction_date=_as_str(meta.get("TransactionDate")),
    )


def simulated_receipt() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return SIMULATED_RECEIPT_PREFIX + "".join(secrets.choice(alphabet) for _ in range(8))


def build_simulated_callback(
    tx: Transaction,
    *,
    at: datetime,
    receipt_number: Optional[str] = None,
) -> dict[str, Any]:
    """Daraja-shaped success callback for a simulated transaction."""
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": tx.merchant_request_id,
                "CheckoutRequestID": tx.checkout_request_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": tx.amount},
                        {"Name": "MpesaReceiptNumber", "Value": receipt_number or simulated_receipt()},
                        {"Name": "TransactionDate", "Value": int(at.strftime("%Y%m%d%H%M%S"))},
                        {"Name": "PhoneNumber", "Value": int(tx.phone)},
                    ]
                },
            }
        }
    }


# ==========================================================
# Receiver
# ==========================================================

@dataclass(frozen=True)
class CallbackResult:
    applied: bool
    outcome: str  # applied | duplicate | invalid | queued
    checkout_request_id: Optional[str] = None
    reason: Optional[str] = None
    status: Optional[str] = None


class CallbackReceiver:
    """
    Resolves a Pending transaction from a gateway callback.
    handle() never raises: the HTTP layer always acknowledges.
    """

    def __init__(
        self,
        store: TransactionStore,
        clock: Clock,
        *,
        notifier: Optional[Notifier] = None,
        retry_queue: Optional["CallbackRetryQueue"] = None,
    ):
        self.store = store
        self.clock = clock
        self.notifier = notifier
        self.retry_queue = retry_queue

    def handle(self, payload: Any) -> CallbackResult:
        try:
            parsed = parse_stk_callback(payload)
        except InvalidCallback as exc:
            metrics.increment_callback("invalid")
            logger.warning("callback_quarantined reason=%s", redact_text(exc.message))
            return CallbackResult(applied=False, outcome="invalid", reason=exc.code)

        try:
            return self.apply(parsed)
        except PersistenceFailure as exc:
            metrics.increment_callback("persistence_failure")
            logger.error(
                "callback_persist_failed checkout_request_id=%s error=%s",
                parsed.checkout_request_id,
                exc.message,
            )
            if self.retry_queue is not None:
                self.retry_queue.enqueue(parsed)
            return CallbackResult(
                applied=False,
                outcome="queued",
                checkout_request_id=parsed.checkout_request_id,
                reason=exc.code,
            )
        except Exception:
            metrics.increment_callback("error")
            logger.exception("callback_unhandled checkout_request_id=%s", parsed.checkout_request_id)
            return CallbackResult(
                applied=False,
                outcome="error",
                checkout_request_id=parsed.checkout_request_id,
                reason="INTERNAL_ERROR",
            )

    def apply(self, parsed: ParsedCallback) -> CallbackResult:
        """
        Single conditional update. Raises PersistenceFailure so callers
        (the receiver itself, the retry queue) decide what to do with it.
        """
        checkout_id = parsed.checkout_request_id
        updated = self.store.resolve_if_pending(checkout_id, parsed.to_resolution(), at=self.clock.now())

        if updated is None:
            current = self.store.get(checkout_id)
            reason = "TRANSACTION_NOT_FOUND" if current is None else f"ALREADY_{current.status}"
            metrics.increment_callback("duplicate")
            logger.info(
                "callback_ignored reason=%s kind=%s checkout_request_id=%s result_code=%s",
                reason,
                DUPLICATE_CALLBACK,
                checkout_id,
                parsed.result_code,
            )
            return CallbackResult(
                applied=False,
                outcome="duplicate",
                checkout_request_id=checkout_id,
                reason=reason,
                status=current.status if current is not None else None,
            )

        metrics.increment_callback("applied")
        logger.info(
            "callback_applied checkout_request_id=%s status=%s result_code=%s receipt=%s",
            checkout_id,
            updated.status,
            updated.result_code,
            updated.receipt_number,
        )
        if updated.status == SUCCESS:
            notify_success(self.notifier, updated)

        return CallbackResult(
            applied=True,
            outcome="applied",
            checkout_request_id=checkout_id,
            status=updated.status,
        )
