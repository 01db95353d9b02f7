# Overview: Transaction helpers shared by the ticket engine services.

from __future__ import annotations

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Contention on a locked ticket row resolves by normal lock waiting.
    """
    return query.with_for_update()


def run_atomic(func):
    """
    Run func() as one database transaction.

    Commits when func returns, rolls back and re-raises on any exception.
    There is no retry: a failed request is reported to the caller, who may
    resubmit it.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise
