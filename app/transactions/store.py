
# app/transactions/store.py
from __future__ import annotations

from threading import Lock
from datetime import datetime
from typing import Any, Optional, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor

from app.errors import DuplicateTransaction, PersistenceFailure
from app.transactions.model import PENDING, Resolution, Transaction
from app.transactions.state_machine import assert_receipt_invariant, assert_transition


class TransactionStore(Protocol):
    def create(self, tx: Transaction) -> Transaction: ...
    def get(self, checkout_request_id: str) -> Optional[Transaction]: ...
    def resolve_if_pending(
        self, checkout_request_id: str, resolution: Resolution, *, at: datetime
    ) -> Optional[Transaction]: ...
    def list_pending_before(self, cutoff: datetime, *, limit: int = 100) -> list[Transaction]: ...
    def ping(self) -> bool: ...


def _check_new(tx: Transaction) -> None:
    if tx.status != PENDING:
        raise ValueError(f"Transactions must be created PENDING, got {tx.status}")
    if not (tx.checkout_request_id or "").strip():
        raise ValueError("checkout_request_id is required")


def _check_resolution(resolution: Resolution) -> None:
    assert_transition(PENDING, resolution.status)
    assert_receipt_invariant(resolution.status, resolution.receipt_number)


# ==========================================================
# In-process store (dev / tests)
# ==========================================================

class InMemoryTransactionStore:
    """
    Dict-backed store. The lock makes resolve_if_pending a single
    check-and-set, matching the guarded UPDATE of the Postgres store.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._rows: dict[str, Transaction] = {}

    def create(self, tx: Transaction) -> Transaction:
        _check_new(tx)
        with self._lock:
            if tx.checkout_request_id in self._rows:
                raise DuplicateTransaction(f"checkout_request_id already exists: {tx.checkout_request_id}")
            self._rows[tx.checkout_request_id] = tx
        return tx

    def get(self, checkout_request_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._rows.get(checkout_request_id)

    def resolve_if_pending(
        self, checkout_request_id: str, resolution: Resolution, *, at: datetime
    ) -> Optional[Transaction]:
        _check_resolution(resolution)
        with self._lock:
            current = self._rows.get(checkout_request_id)
            if current is None or current.status != PENDING:
                return None
            updated = current.resolved(resolution, at=at)
            self._rows[checkout_request_id] = updated
            return updated

    def list_pending_before(self, cutoff: datetime, *, limit: int = 100) -> list[Transaction]:
        with self._lock:
            rows = [t for t in self._rows.values() if t.status == PENDING and t.created_at <= cutoff]
        rows.sort(key=lambda t: t.created_at)
        return rows[:limit]

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


# ==========================================================
# PostgreSQL store
# ==========================================================

_COLUMNS = """
  checkout_request_id, merchant_request_id, phone, email, amount, description,
  status, result_code, result_desc, receipt_number, paid_amount, paid_phone,
  transaction_date, simulated, created_at, updated_at
"""


def _row_to_tx(row: dict[str, Any]) -> Transaction:
    return Transaction(
        checkout_request_id=row["checkout_request_id"],
        merchant_request_id=row["merchant_request_id"],
        phone=row["phone"],
        email=row["email"],
        amount=int(row["amount"]),
        description=row.get("description"),
        status=row["status"],
        result_code=row.get("result_code"),
        result_desc=row.get("result_desc"),
        receipt_number=row.get("receipt_number"),
        paid_amount=row.get("paid_amount"),
        paid_phone=row.get("paid_phone"),
        transaction_date=row.get("transaction_date"),
        simulated=bool(row.get("simulated")),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresTransactionStore:
    """
    Store backed by app.payment_transactions.
    `pool` is anything with a get_conn() context manager (db.PgPool).
    """

    def __init__(self, pool):
        self.pool = pool

    def create(self, tx: Transaction) -> Transaction:
        _check_new(tx)
        try:
            with self.pool.get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO app.payment_transactions ({_COLUMNS})
                        VALUES (
                          %s, %s, %s, %s, %s, %s,
                          %s, NULL, NULL, NULL, NULL, NULL,
                          NULL, %s, %s, %s
                        )
                        """,
                        (
                            tx.checkout_request_id,
                            tx.merchant_request_id,
                            tx.phone,
                            tx.email,
                            tx.amount,
                            tx.description,
                            tx.status,
                            tx.simulated,
                            tx.created_at,
                            tx.updated_at,
                        ),
                    )
        except psycopg2.IntegrityError as exc:
            raise DuplicateTransaction(f"checkout_request_id already exists: {tx.checkout_request_id}") from exc
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"insert failed: {type(exc).__name__}") from exc
        return tx

    def get(self, checkout_request_id: str) -> Optional[Transaction]:
        try:
            with self.pool.get_conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"SELECT {_COLUMNS} FROM app.payment_transactions WHERE checkout_request_id = %s",
                        (checkout_request_id,),
                    )
                    row = cur.fetchone()
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"read failed: {type(exc).__name__}") from exc
        return _row_to_tx(row) if row else None

    def resolve_if_pending(
        self, checkout_request_id: str, resolution: Resolution, *, at: datetime
    ) -> Optional[Transaction]:
        _check_resolution(resolution)
        try:
            with self.pool.get_conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        UPDATE app.payment_transactions
                        SET
                          status = %s,
                          result_code = %s,
                          result_desc = %s,
                          receipt_number = %s,
                          paid_amount = %s,
                          paid_phone = %s,
                          transaction_date = %s,
                          updated_at = %s
                        WHERE checkout_request_id = %s
                          AND status = 'PENDING'
                        RETURNING {_COLUMNS}
                        """,
                        (
                            resolution.status,
                            resolution.result_code,
                            resolution.result_desc,
                            resolution.receipt_number,
                            resolution.paid_amount,
                            resolution.paid_phone,
                            resolution.transaction_date,
                            at,
                            checkout_request_id,
                        ),
                    )
                    row = cur.fetchone() if cur.rowcount == 1 else None
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"update failed: {type(exc).__name__}") from exc
        return _row_to_tx(row) if row else None

    def list_pending_before(self, cutoff: datetime, *, limit: int = 100) -> list[Transaction]:
        try:
            with self.pool.get_conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        SELECT {_COLUMNS}
                        FROM app.payment_transactions
                        WHERE status = 'PENDING'
                          AND created_at <= %s
                        ORDER BY created_at
                        LIMIT %s
                        """,
                        (cutoff, limit),
                    )
                    rows = cur.fetchall()
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"pending scan failed: {type(exc).__name__}") from exc
        return [_row_to_tx(r) for r in rows]

    def ping(self) -> bool:
        try:
            with self.pool.get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1;")
                    cur.fetchone()
            return True
        except Exception:
            return False
