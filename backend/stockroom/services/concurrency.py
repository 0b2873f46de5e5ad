# Overview: Service-layer operations for concurrency; serialized all-or-nothing write units.

from __future__ import annotations

import threading
from contextlib import contextmanager

from ..extensions import db


# One writer at a time per process. Re-entrant so a unit can call helpers
# that open their own unit; only the outermost one commits.
_write_lock = threading.RLock()
_state = threading.local()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def in_atomic_unit() -> bool:
    return getattr(_state, "depth", 0) > 0


@contextmanager
def atomic_unit():
    """
    Scoped write transaction.

    Acquires the process-wide write lock, yields the session, commits when
    the block exits normally and rolls back on any exception (which is
    re-raised). Readers never observe a partially applied unit.
    """
    with _write_lock:
        depth = getattr(_state, "depth", 0)
        _state.depth = depth + 1
        try:
            yield db.session
            if depth == 0:
                db.session.commit()
        except BaseException:
            if depth == 0:
                db.session.rollback()
            raise
        finally:
            _state.depth = depth
