
# app/payments/initiator.py
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Callable, Optional

from app.errors import GatewayUnavailable, ValidationError
from app.gateway.base import PushPaymentGateway, StkPushRequest
from app.payments.callbacks import CallbackReceiver, build_simulated_callback
from app.payments.validation import DEFAULT_DESCRIPTION, PaymentRequest, validate_payment_request
from app.scheduling import Clock, Scheduler
from app.transactions.model import PENDING, Transaction
from app.transactions.store import TransactionStore
from services import metrics
from services.redaction import mask_phone

logger = logging.getLogger("pushpay.payments")

SIMULATION_DELAY_SECONDS = 10.0

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(n: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(n))


def simulated_checkout_id(epoch_ms: int) -> str:
    return f"ws_CO_{epoch_ms}_{_random_suffix()}"


@dataclass(frozen=True)
class InitiationResult:
    checkout_request_id: str
    merchant_request_id: str
    simulated: bool
    customer_message: Optional[str] = None

    def as_response(self) -> dict[str, Any]:
        return {"success": True, "checkoutRequestId": self.checkout_request_id}


class PaymentInitiator:
    """
    Validates a payment request, asks the gateway for an STK push and
    records the Pending transaction. The only place transactions are created.

    With no gateway, a simulated push is recorded instead and a synthetic
    success callback is scheduled through the normal CallbackReceiver.
    """

    def __init__(
        self,
        store: TransactionStore,
        gateway: Optional[PushPaymentGateway],
        *,
        clock: Clock,
        scheduler: Scheduler,
        receiver: CallbackReceiver,
        simulation_enabled: bool = True,
        simulation_delay_s: float = SIMULATION_DELAY_SECONDS,
        receipt_factory: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.clock = clock
        self.scheduler = scheduler
        self.receiver = receiver
        self.simulation_enabled = simulation_enabled
        self.simulation_delay_s = simulation_delay_s
        self.receipt_factory = receipt_factory

    @property
    def mode(self) -> str:
        if self.gateway is not None:
            return "live"
        return "simulated" if self.simulation_enabled else "disabled"

    def initiate(
        self,
        *,
        phone: Any,
        amount: Any,
        email: Any,
        description: Any = None,
    ) -> InitiationResult:
        try:
            req = validate_payment_request(phone=phone, amount=amount, email=email, description=description)
        except ValidationError as exc:
            metrics.increment_initiation(self.mode, "invalid")
            logger.info("initiate_rejected field=%s error=%s", exc.field, exc.message)
            raise

        if self.gateway is not None:
            return self._initiate_live(req)
        if not self.simulation_enabled:
            metrics.increment_initiation("disabled", "gateway_unavailable")
            raise GatewayUnavailable("Payment gateway is not configured")
        return self._initiate_simulated(req)

    # ----------------------------------------------------------

    def _initiate_live(self, req: PaymentRequest) -> InitiationResult:
        assert self.gateway is not None
        try:
            res = self.gateway.stk_push(
                StkPushRequest(
                    phone=req.phone,
                    amount=req.amount,
                    account_reference=req.email,
                    description=req.description or DEFAULT_DESCRIPTION,
                )
            )
        except GatewayUnavailable as exc:
            metrics.increment_initiation("live", "gateway_unavailable")
            logger.warning(
                "stk_push_failed gateway=%s phone=%s amount=%s error=%s",
                self.gateway.name,
                mask_phone(req.phone),
                req.amount,
                exc.message,
            )
            raise

        tx = self._record(req, res.checkout_request_id, res.merchant_request_id, simulated=False)
        metrics.increment_initiation("live", "ok")
        logger.info(
            "stk_push_sent gateway=%s checkout_request_id=%s phone=%s amount=%s",
            self.gateway.name,
            tx.checkout_request_id,
            mask_phone(tx.phone),
            tx.amount,
        )
        return InitiationResult(
            checkout_request_id=tx.checkout_request_id,
            merchant_request_id=tx.merchant_request_id,
            simulated=False,
            customer_message=res.customer_message,
        )

    def _initiate_simulated(self, req: PaymentRequest) -> InitiationResult:
        now = self.clock.now()
        epoch_ms = int(now.timestamp() * 1000)
        checkout_id = simulated_checkout_id(epoch_ms)
        merchant_id = f"sim-{epoch_ms}-{_random_suffix(6)}"

        tx = self._record(req, checkout_id, merchant_id, simulated=True)
        self.scheduler.call_later(
            self.simulation_delay_s,
            lambda: self._deliver_simulated(tx),
            name=f"simulated-callback-{checkout_id}",
        )
        metrics.increment_initiation("simulated", "ok")
        logger.info(
            "stk_push_simulated checkout_request_id=%s phone=%s amount=%s delay_s=%s",
            checkout_id,
            mask_phone(tx.phone),
            tx.amount,
            self.simulation_delay_s,
        )
        return InitiationResult(checkout_request_id=checkout_id, merchant_request_id=merchant_id, simulated=True)

    def _deliver_simulated(self, tx: Transaction) -> None:
        receipt = self.receipt_factory() if self.receipt_factory else None
        payload = build_simulated_callback(tx, at=self.clock.now(), receipt_number=receipt)
        result = self.receiver.handle(payload)
        logger.info(
            "simulated_callback_delivered checkout_request_id=%s outcome=%s reason=%s",
            tx.checkout_request_id,
            result.outcome,
            result.reason,
        )

    def _record(self, req: PaymentRequest, checkout_id: str, merchant_id: str, *, simulated: bool) -> Transaction:
        now = self.clock.now()
        tx = Transaction(
            checkout_request_id=checkout_id,
            merchant_request_id=merchant_id,
            phone=req.phone,
            email=req.email,
            amount=req.amount,
            description=req.description,
            status=PENDING,
            created_at=now,
            updated_at=now,
            simulated=simulated,
        )
        return self.store.create(tx)
