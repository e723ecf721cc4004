import re

import pytest

from app.errors import GatewayUnavailable, ValidationError
from app.payments.callbacks import CallbackReceiver
from app.payments.initiator import PaymentInitiator
from app.transactions.model import PENDING, SUCCESS
from services import metrics
from tests.conftest import FakeGateway


def _initiator(store, clock, scheduler, notifier, gateway, **kwargs):
    receiver = CallbackReceiver(store, clock, notifier=notifier)
    return PaymentInitiator(store, gateway, clock=clock, scheduler=scheduler, receiver=receiver, **kwargs)


def test_live_initiation_records_pending(store, clock, scheduler, notifier):
    gateway = FakeGateway()
    initiator = _initiator(store, clock, scheduler, notifier, gateway)

    result = initiator.initiate(phone="0712345678", amount=10, email="test@example.com")

    assert result.as_response() == {"success": True, "checkoutRequestId": "ws_CO_TEST_1"}
    assert result.simulated is False
    tx = store.get("ws_CO_TEST_1")
    assert tx.status == PENDING
    assert tx.phone == "254712345678"
    assert tx.merchant_request_id == "29115-1"
    assert tx.simulated is False

    sent = gateway.requests[0]
    assert sent.phone == "254712345678"
    assert sent.account_reference == "test@example.com"
    assert sent.description == "Payment"
    assert scheduler.pending() == 0
    assert metrics.get_counter("payment_initiations_total", {"mode": "live", "result": "ok"}) == 1


def test_gateway_failure_creates_no_record(store, clock, scheduler, notifier):
    initiator = _initiator(store, clock, scheduler, notifier, FakeGateway(fail="Gateway timeout"))

    with pytest.raises(GatewayUnavailable) as exc:
        initiator.initiate(phone="254712345678", amount=10, email="test@example.com")

    assert exc.value.message == "Gateway timeout"
    assert len(store) == 0
    assert metrics.get_counter("payment_initiations_total", {"mode": "live", "result": "gateway_unavailable"}) == 1


@pytest.mark.parametrize(
    "phone,amount,email,field",
    [
        ("0812345678", 10, "test@example.com", "phone"),
        ("0712345678", 0, "test@example.com", "amount"),
        ("0712345678", -1, "test@example.com", "amount"),
        ("0712345678", 10, "not-an-email", "email"),
    ],
)
def test_invalid_input_never_reaches_gateway(store, clock, scheduler, notifier, phone, amount, email, field):
    gateway = FakeGateway()
    initiator = _initiator(store, clock, scheduler, notifier, gateway)

    with pytest.raises(ValidationError) as exc:
        initiator.initiate(phone=phone, amount=amount, email=email)

    assert exc.value.field == field
    assert gateway.requests == []
    assert len(store) == 0


def test_simulation_resolves_through_callback_path(store, clock, scheduler, notifier):
    initiator = _initiator(store, clock, scheduler, notifier, None, simulation_delay_s=10)

    result = initiator.initiate(phone="0712345678", amount=10, email="test@example.com", description="Breach check")

    assert result.simulated is True
    assert re.fullmatch(r"ws_CO_\d{13}_[a-z0-9]{9}", result.checkout_request_id)
    tx = store.get(result.checkout_request_id)
    assert tx.status == PENDING
    assert tx.simulated is True

    scheduler.advance(9)
    assert store.get(result.checkout_request_id).status == PENDING

    scheduler.advance(1)
    tx = store.get(result.checkout_request_id)
    assert tx.status == SUCCESS
    assert tx.result_code == 0
    assert tx.receipt_number.startswith("NLJ7RT61SV")
    assert tx.paid_amount == 10
    assert tx.paid_phone == "254712345678"
    assert [t.checkout_request_id for t in notifier.sent] == [result.checkout_request_id]
    assert metrics.get_counter("payment_callbacks_total", {"outcome": "applied"}) == 1


def test_simulation_uses_receipt_factory(store, clock, scheduler, notifier):
    initiator = _initiator(store, clock, scheduler, notifier, None, receipt_factory=lambda: "NLJ7RT61SV")
    result = initiator.initiate(phone="0712345678", amount=10, email="test@example.com")
    scheduler.advance(10)
    assert store.get(result.checkout_request_id).receipt_number == "NLJ7RT61SV"


def test_simulated_ids_are_unique(store, clock, scheduler, notifier):
    initiator = _initiator(store, clock, scheduler, notifier, None)
    ids = {initiator.initiate(phone="0712345678", amount=10, email="test@example.com").checkout_request_id for _ in range(20)}
    assert len(ids) == 20


def test_simulation_disabled_without_gateway(store, clock, scheduler, notifier):
    initiator = _initiator(store, clock, scheduler, notifier, None, simulation_enabled=False)
    assert initiator.mode == "disabled"
    with pytest.raises(GatewayUnavailable):
        initiator.initiate(phone="0712345678", amount=10, email="test@example.com")
    assert len(store) == 0
