# Overview: Service-layer operations for concurrency; row locks, write transactions, retries and per-key mutexes.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    begin_write() covers SQLite by taking the database write lock up front.
    populate_existing() makes the locked read overwrite any copy of the row
    already sitting in the identity map.
    """
    return query.with_for_update().populate_existing()


def begin_write() -> None:
    """
    Open a write transaction before the first read of a read-modify-write.

    On SQLite this issues BEGIN IMMEDIATE so two writers can never both read
    the same row and then race to update it. Other dialects rely on
    lock_for_update(). No-op if the connection is already in a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    conn = db.session.connection()
    raw = conn.connection.dbapi_connection
    if getattr(raw, "in_transaction", False):
        return
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates unchanged.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


class KeyedLocks:
    """
    In-process mutex per key (order id, product id, ...).

    Serializes state-mutating operations on the same aggregate inside one
    process, so the sweeper thread and request threads never interleave on a
    single order. Entries are dropped once no thread holds or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


order_locks = KeyedLocks()
