# Overview: Service-layer operations for concurrency; transaction scopes, row locks and store error translation.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    ConcurrencyConflict,
    LedgerError,
    OperationCancelled,
    TransientStoreFailure,
)
from ..extensions import db
"""
Stock Write Discipline (authoritative)

- Every write to Product.stock_quantity happens inside transaction_scope().
- The scope takes the write lock up front: BEGIN IMMEDIATE on SQLite (which
  ignores SELECT ... FOR UPDATE), SET LOCAL lock_timeout on PostgreSQL.
- Products are re-read with lock_for_update() before being debited.
- Product.version_id and CHECK (stock_quantity >= 0) are backstops: if a race
  slips past the lock, the flush fails and surfaces as ConcurrencyConflict.
- Any exit other than normal completion rolls the whole scope back.
- The engine never retries by itself. run_with_retry() re-runs a complete
  operation in a fresh transaction and is for callers only.
"""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def check_cancelled(cancel: threading.Event | None, operation: str) -> None:
    """Raise OperationCancelled if the caller signalled cancellation."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(operation)


def translate_store_error(exc: Exception, operation: str) -> LedgerError:
    """Map a SQLAlchemy failure to the ledger error taxonomy."""
    if isinstance(exc, StaleDataError):
        return ConcurrencyConflict(
            f"{operation} conflicted with a concurrent update; retry the operation",
            {"reason": "stale_version"},
        )
    if isinstance(exc, IntegrityError):
        return ConcurrencyConflict(
            f"{operation} violated a store constraint; retry the operation",
            {"reason": "constraint_violation", "constraint": str(exc.orig)},
        )
    if isinstance(exc, OperationalError) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    ):
        return TransientStoreFailure(
            f"{operation} could not complete: store unavailable or lock timeout",
            {"reason": str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc)},
        )
    return TransientStoreFailure(f"{operation} failed in the store", {"reason": str(exc)})


def _begin_write(session) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        dbapi_conn = session.connection().connection.dbapi_connection
        if not dbapi_conn.in_transaction:
            session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config["STORE_LOCK_TIMEOUT_SECONDS"] * 1000)
        session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))


@contextmanager
def transaction_scope(operation: str, *, cancel: threading.Event | None = None):
    """
    Scoped write transaction against db.session.

    Yields the session. Commits on normal exit. On any other exit the
    transaction is rolled back before the error propagates; store failures are
    translated into ConcurrencyConflict / TransientStoreFailure.

    Cancellation is checked once more right before commit. After commit
    starts it is no longer honored.
    """
    session = db.session
    try:
        check_cancelled(cancel, operation)
        _begin_write(session)
        yield session
        check_cancelled(cancel, operation)
        session.flush()
    except LedgerError:
        session.rollback()
        raise
    except (StaleDataError, DBAPIError) as exc:
        session.rollback()
        raise translate_store_error(exc, operation) from exc
    except BaseException:
        session.rollback()
        raise

    try:
        session.commit()
    except (StaleDataError, DBAPIError) as exc:
        session.rollback()
        raise translate_store_error(exc, operation) from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Re-run a complete ledger operation after a retryable failure.

    Retries on ConcurrencyConflict and TransientStoreFailure only. Every
    attempt opens its own transaction, so a failed attempt has left nothing
    behind. Non-retryable errors propagate immediately.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except LedgerError as exc:
            if not exc.retryable or attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d): %s",
                type(exc).__name__, attempt + 1, attempts, exc.message,
            )
            time.sleep(backoff_base * (2 ** attempt))
