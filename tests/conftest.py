
# tests/conftest.py

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.errors import GatewayUnavailable, PersistenceFailure
from app.gateway.base import StkPushRequest, StkPushResult
from app.payments.callbacks import CallbackReceiver
from app.scheduling import ManualClock, VirtualScheduler
from app.transactions.model import PENDING, Transaction
from app.transactions.store import InMemoryTransactionStore
from main import create_app
from services import metrics
from settings import Settings


# ---------------------------
# Fakes
# ---------------------------

class FakeGateway:
    name = "FAKE"

    def __init__(self, *, fail: Optional[str] = None):
        self.fail = fail
        self.requests: List[StkPushRequest] = []
        self._n = 0

    def stk_push(self, request: StkPushRequest) -> StkPushResult:
        self.requests.append(request)
        if self.fail:
            raise GatewayUnavailable(self.fail)
        self._n += 1
        return StkPushResult(
            checkout_request_id=f"ws_CO_TEST_{self._n}",
            merchant_request_id=f"29115-{self._n}",
            customer_message="Success. Request accepted for processing",
        )


class FlakyStore(InMemoryTransactionStore):
    """Raises PersistenceFailure on the first `failures` updates."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    def resolve_if_pending(self, checkout_request_id, resolution, *, at):
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceFailure("update failed: OperationalError")
        return super().resolve_if_pending(checkout_request_id, resolution, at=at)


class RecordingNotifier:
    def __init__(self, *, explode: bool = False):
        self.explode = explode
        self.sent: List[Transaction] = []

    def payment_succeeded(self, tx: Transaction) -> None:
        self.sent.append(tx)
        if self.explode:
            raise RuntimeError("smtp down")


@dataclass
class Harness:
    app: Any
    client: TestClient
    store: InMemoryTransactionStore
    clock: ManualClock
    scheduler: VirtualScheduler
    notifier: RecordingNotifier
    gateway: Optional[FakeGateway] = None


def stk_callback(
    checkout_request_id: str,
    *,
    result_code: int = 0,
    result_desc: str = "The service request is processed successfully.",
    receipt: str = "NLJ7RT61SV",
    amount: Any = 10,
    phone: Any = 254712345678,
    merchant_request_id: str = "29115-1",
) -> Dict[str, Any]:
    cb: Dict[str, Any] = {
        "MerchantRequestID": merchant_request_id,
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if result_code == 0:
        cb["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "TransactionDate", "Value": 20260101120010},
                {"Name": "PhoneNumber", "Value": phone},
            ]
        }
    return {"Body": {"stkCallback": cb}}


def pending_tx(checkout_request_id: str, clock: ManualClock, **overrides: Any) -> Transaction:
    values: Dict[str, Any] = dict(
        checkout_request_id=checkout_request_id,
        merchant_request_id="29115-1",
        phone="254712345678",
        email="test@example.com",
        amount=10,
        status=PENDING,
        created_at=clock.now(),
        updated_at=clock.now(),
    )
    values.update(overrides)
    return Transaction(**values)


# ---------------------------
# Fixtures
# ---------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def scheduler(clock: ManualClock) -> VirtualScheduler:
    return VirtualScheduler(clock)


@pytest.fixture()
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def receiver(store, clock, notifier) -> CallbackReceiver:
    return CallbackReceiver(store, clock, notifier=notifier)


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(_env_file=None, ENV="test", DATABASE_URL="", SIMULATION_DELAY_S=10, PENDING_TTL_S=120)


def _harness(test_settings, store, clock, scheduler, notifier, gateway) -> Harness:
    app = create_app(
        test_settings,
        store=store,
        gateway=gateway,
        scheduler=scheduler,
        clock=clock,
        notifier=notifier,
    )
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    client = TestClient(app, raise_server_exceptions=False)
    return Harness(app, client, store, clock, scheduler, notifier, gateway)


@pytest.fixture()
def live(test_settings, store, clock, scheduler, notifier) -> Harness:
    """App wired to a fake live gateway."""
    return _harness(test_settings, store, clock, scheduler, notifier, FakeGateway())


@pytest.fixture()
def simulated(test_settings, store, clock, scheduler, notifier) -> Harness:
    """App with no gateway: initiation falls back to simulation."""
    return _harness(test_settings, store, clock, scheduler, notifier, None)
