
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PGConn
from psycopg2.pool import ThreadedConnectionPool


class PgPool:
    """
    PostgreSQL connection pool owned by the app factory.
    Opened lazily on first use, closed on shutdown.
    """

    def __init__(self, dsn: str, *, minconn: int = 1, maxconn: int = 10, connect_timeout: int = 5):
        self.dsn = dsn
        self.minconn = minconn
        self.maxconn = maxconn
        self.connect_timeout = connect_timeout
        self._pool: ThreadedConnectionPool | None = None

    def open(self) -> None:
        psycopg2.extras.register_uuid()
        if self._pool is None:
            self._pool = ThreadedConnectionPool(
                minconn=self.minconn,
                maxconn=self.maxconn,
                dsn=self.dsn,
                connect_timeout=self.connect_timeout,
            )

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()
            self._pool = None

    @contextmanager
    def get_conn(self) -> Iterator[PGConn]:
        """
        Provides a transactional DB connection.
        Auto-commits on success, rolls back on error.
        """
        if self._pool is None:
            self.open()

        conn = self._pool.getconn()

        try:
            # never allow long-running queries
            with conn.cursor() as cur:
                cur.execute("SET statement_timeout = '5000ms';")
                cur.execute("SET idle_in_transaction_session_timeout = '5000ms';")
                cur.execute("SET application_name = 'pushpay_api';")

            yield conn
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            self._pool.putconn(conn)
