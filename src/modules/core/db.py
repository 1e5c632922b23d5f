"""Database helpers for bounded lock waits.

Ledger mutations must never block indefinitely on a contended row.  The
wait is bounded per backend and any lock-wait, deadlock or serialization
failure is recognised by ``is_lock_conflict`` so callers can translate it
into a retryable domain error.
"""

from __future__ import annotations

import math
from functools import partial

from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections, transaction

# lock_not_available, deadlock_detected, serialization_failure
_PG_LOCK_SQLSTATES = frozenset({"55P03", "40P01", "40001"})
# ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
_MYSQL_LOCK_ERRNOS = frozenset({1205, 1213})
_SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked")
# Session value of innodb_lock_wait_timeout to put back, kept on the connection.
_MYSQL_SAVED_TIMEOUT = "_saved_innodb_lock_wait_timeout"


def apply_lock_timeout(timeout_ms: int, using: str = DEFAULT_DB_ALIAS) -> None:
    """Bound row-lock waits for the current transaction.

    Must be called inside an atomic block.  SQLite needs no statement: its
    busy timeout is configured on the connection (``OPTIONS["timeout"]``).

    MySQL has no transaction-local form of ``innodb_lock_wait_timeout``, so
    the session value is saved first and put back by
    ``restore_lock_timeout``: on commit, or by ``translate_lock_errors``
    once the outermost block has rolled back.
    """
    connection = connections[using]
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT set_config('lock_timeout', %s, true)",
                [f"{int(timeout_ms)}ms"],
            )
    elif connection.vendor == "mysql":
        with connection.cursor() as cursor:
            if getattr(connection, _MYSQL_SAVED_TIMEOUT, None) is None:
                cursor.execute("SELECT @@SESSION.innodb_lock_wait_timeout")
                setattr(connection, _MYSQL_SAVED_TIMEOUT, cursor.fetchone()[0])
            cursor.execute(
                "SET SESSION innodb_lock_wait_timeout = %s",
                [max(1, math.ceil(timeout_ms / 1000))],
            )
        transaction.on_commit(partial(restore_lock_timeout, using), using=using)


def restore_lock_timeout(using: str = DEFAULT_DB_ALIAS) -> None:
    """Put back the MySQL session lock wait saved by ``apply_lock_timeout``.

    No-op on other backends, when nothing was saved, or while still inside
    an atomic block.
    """
    connection = connections[using]
    previous = getattr(connection, _MYSQL_SAVED_TIMEOUT, None)
    if previous is None or connection.in_atomic_block:
        return
    with connection.cursor() as cursor:
        cursor.execute("SET SESSION innodb_lock_wait_timeout = %s", [previous])
    setattr(connection, _MYSQL_SAVED_TIMEOUT, None)


def is_lock_conflict(exc: DatabaseError) -> bool:
    """Return ``True`` when *exc* means "another transaction holds the lock"."""
    cause = exc.__cause__ or exc

    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    if sqlstate in _PG_LOCK_SQLSTATES:
        return True

    args = getattr(cause, "args", ())
    if args and isinstance(args[0], int) and args[0] in _MYSQL_LOCK_ERRNOS:
        return True

    message = str(exc).lower()
    return any(fragment in message for fragment in _SQLITE_LOCK_MESSAGES)
