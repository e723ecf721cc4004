import threading

import pytest

import db


class RecordingConn:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0
        self.statements = []

    def cursor(self):
        conn = self

        class _Cur:
            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def execute(self, sql, params=None):
                conn.statements.append(sql)

        return _Cur()

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class RecordingPool:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.out = 0
        self.max_out = 0
        self.lock = threading.Lock()
        self.closed = False
        RecordingPool.instances.append(self)

    def getconn(self):
        with self.lock:
            self.out += 1
            self.max_out = max(self.max_out, self.out)
        return RecordingConn()

    def putconn(self, conn):
        with self.lock:
            self.out -= 1

    def closeall(self):
        self.closed = True


@pytest.fixture
def pool(monkeypatch):
    RecordingPool.instances = []
    monkeypatch.setattr(db, "ThreadedConnectionPool", RecordingPool)
    monkeypatch.setattr(db.psycopg2.extras, "register_uuid", lambda: None)
    p = db.PgPool("postgresql://u:p@localhost/pushpay", maxconn=4)
    yield p
    p.close()


def test_pool_is_thread_safe_variant():
    from psycopg2.pool import ThreadedConnectionPool

    assert db.ThreadedConnectionPool is ThreadedConnectionPool


def test_pool_opens_lazily_with_settings(pool):
    assert RecordingPool.instances == []
    with pool.get_conn():
        pass
    [opened] = RecordingPool.instances
    assert opened.kwargs["maxconn"] == 4
    assert opened.kwargs["dsn"].endswith("/pushpay")


def test_get_conn_commits_and_returns_connection(pool):
    with pool.get_conn() as conn:
        assert "SET application_name = 'pushpay_api';" in conn.statements
    assert conn.commits == 1
    assert RecordingPool.instances[0].out == 0


def test_get_conn_rolls_back_on_error(pool):
    with pytest.raises(RuntimeError):
        with pool.get_conn() as conn:
            raise RuntimeError("boom")
    assert conn.rollbacks == 1
    assert conn.commits == 0
    assert RecordingPool.instances[0].out == 0


def test_concurrent_callers_all_return_their_connections(pool):
    pool.open()
    barrier = threading.Barrier(4)

    def work():
        with pool.get_conn():
            barrier.wait(timeout=5)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    opened = RecordingPool.instances[0]
    assert opened.max_out == 4
    assert opened.out == 0


def test_close_releases_pool(pool):
    pool.open()
    pool.close()
    assert RecordingPool.instances[0].closed
