"""Database setup utilities.

This module centralises the SQLAlchemy extension object and the
small amount of dialect-aware SQL the service needs. It exposes
the ``db`` object used by models throughout the application and
``insert_rows``, a bulk insert with an explicit conflict policy.

Import ``db`` from ``disaster_monitor`` rather than from this
module directly. The application factory initialises ``db`` with
the Flask app.
"""
from __future__ import annotations

import enum
from typing import Iterable, Mapping, Optional, Sequence

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Table, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

db = SQLAlchemy()


class ConflictPolicy(enum.Enum):
    """What an insert does when a row collides with a unique key."""
    ERROR = "error"
    IGNORE = "ignore"


def _insert_statement(table: Table, dialect_name: str, conflict: ConflictPolicy,
                      conflict_target: Optional[Sequence[str]]):
    if conflict is ConflictPolicy.ERROR:
        return insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing(index_elements=conflict_target)
    if dialect_name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing(index_elements=conflict_target)
    if dialect_name in ("mysql", "mariadb"):
        # MySQL has no per-key form; IGNORE applies to every unique index.
        return insert(table).prefix_with("IGNORE")
    raise NotImplementedError(f"ConflictPolicy.IGNORE is not supported on {dialect_name!r}")


def insert_rows(
    session: Session,
    table: Table,
    rows: Iterable[Mapping],
    conflict: ConflictPolicy = ConflictPolicy.ERROR,
    conflict_target: Optional[Sequence[str]] = None,
) -> int:
    """Insert ``rows`` into ``table`` and return how many were written.

    With ``ConflictPolicy.IGNORE`` a row that collides with an existing
    unique key is skipped instead of raising. ``conflict_target`` narrows
    the check to the given columns; when omitted any unique constraint
    counts. Rows are executed one at a time so the returned count is
    exact on every backend. The caller owns the transaction.
    """
    dialect_name = session.get_bind().dialect.name
    stmt = _insert_statement(table, dialect_name, conflict, conflict_target)
    written = 0
    for row in rows:
        result = session.execute(stmt, dict(row))
        written += max(result.rowcount, 0)
    return written
