from contextlib import contextmanager
from datetime import timedelta

import psycopg2
import pytest

from app.errors import DuplicateTransaction, PersistenceFailure
from app.transactions.model import FAILED, SUCCESS, Resolution
from app.transactions.store import PostgresTransactionStore
from tests.conftest import pending_tx


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = -1
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((" ".join(sql.split()), params))
        if self.conn.raise_on_execute is not None:
            raise self.conn.raise_on_execute
        self._rows = list(self.conn.results.pop(0)) if self.conn.results else []
        self.rowcount = len(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeConn:
    def __init__(self):
        self.executed = []
        self.results = []
        self.raise_on_execute = None

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)


class FakePool:
    def __init__(self):
        self.conn = FakeConn()

    @contextmanager
    def get_conn(self):
        yield self.conn


def _row(tx, **overrides):
    row = {
        "checkout_request_id": tx.checkout_request_id,
        "merchant_request_id": tx.merchant_request_id,
        "phone": tx.phone,
        "email": tx.email,
        "amount": tx.amount,
        "description": tx.description,
        "status": tx.status,
        "result_code": None,
        "result_desc": None,
        "receipt_number": None,
        "paid_amount": None,
        "paid_phone": None,
        "transaction_date": None,
        "simulated": False,
        "created_at": tx.created_at,
        "updated_at": tx.updated_at,
    }
    row.update(overrides)
    return row


@pytest.fixture()
def pool():
    return FakePool()


def test_create_inserts_pending_row(pool, clock):
    store = PostgresTransactionStore(pool)
    store.create(pending_tx("ws_CO_1", clock))

    sql, params = pool.conn.executed[-1]
    assert sql.startswith("INSERT INTO app.payment_transactions")
    assert params[0] == "ws_CO_1"
    assert "PENDING" in params


def test_create_maps_unique_violation(pool, clock):
    pool.conn.raise_on_execute = psycopg2.IntegrityError("duplicate key")
    with pytest.raises(DuplicateTransaction):
        PostgresTransactionStore(pool).create(pending_tx("ws_CO_1", clock))


def test_driver_errors_become_persistence_failure(pool, clock):
    pool.conn.raise_on_execute = psycopg2.OperationalError("connection reset")
    store = PostgresTransactionStore(pool)
    with pytest.raises(PersistenceFailure):
        store.get("ws_CO_1")
    with pytest.raises(PersistenceFailure):
        store.resolve_if_pending("ws_CO_1", Resolution(FAILED, 1, "x"), at=clock.now())
    assert store.ping() is False


def test_resolve_is_guarded_on_pending(pool, clock):
    tx = pending_tx("ws_CO_1", clock)
    pool.conn.results.append([_row(tx, status=SUCCESS, result_code=0, result_desc="ok", receipt_number="NLJ7RT61SV")])

    out = PostgresTransactionStore(pool).resolve_if_pending(
        "ws_CO_1",
        Resolution(SUCCESS, 0, "ok", receipt_number="NLJ7RT61SV"),
        at=clock.now(),
    )

    sql, params = pool.conn.executed[-1]
    assert sql.startswith("UPDATE app.payment_transactions")
    assert "WHERE checkout_request_id = %s AND status = 'PENDING'" in sql
    assert "RETURNING" in sql
    assert params[-1] == "ws_CO_1"
    assert out.status == SUCCESS
    assert out.receipt_number == "NLJ7RT61SV"


def test_resolve_lost_race_returns_none(pool, clock):
    pool.conn.results.append([])
    out = PostgresTransactionStore(pool).resolve_if_pending("ws_CO_1", Resolution(FAILED, 1032, "cancelled"), at=clock.now())
    assert out is None


def test_pending_scan_uses_cutoff_and_limit(pool, clock):
    tx = pending_tx("ws_CO_1", clock)
    pool.conn.results.append([_row(tx)])
    cutoff = clock.now() - timedelta(seconds=120)

    rows = PostgresTransactionStore(pool).list_pending_before(cutoff, limit=25)

    sql, params = pool.conn.executed[-1]
    assert "WHERE status = 'PENDING' AND created_at <= %s" in sql
    assert params == (cutoff, 25)
    assert [r.checkout_request_id for r in rows] == ["ws_CO_1"]
