# Overview: Transaction and locking helpers shared by the lifecycle and ledger services.

from __future__ import annotations

from contextlib import contextmanager


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic(session):
    """
    Run a multi-table state transition as one transaction.

    Commits when the block finishes, rolls back and re-raises on any error.
    Business operations are never retried here: a failed transition is
    reported to the caller as-is.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
