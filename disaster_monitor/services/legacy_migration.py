"""One-time import of the legacy ``db.json`` store.

Before the relational backend existed, accounts and reports lived in
one JSON document::

    {"users": [{"id", "username", "passwordHash"}, ...],
     "reports": [{...}, ...]}   # newest report first

``migrate_legacy_store`` runs at startup, before the app serves any
request. It copies both lists into the ``accounts`` and ``reports``
tables and then renames the file so later starts skip it. Each list is
written in its own transaction with ignore-on-conflict inserts, so a
pass that dies halfway can simply be run again on the next start. A
failure at any step is logged and the file is left where it is; the
service still starts.
"""
from __future__ import annotations

import json
import logging
import math
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple, Optional

from dateutil.parser import parse as parse_date  # type: ignore
from marshmallow import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError

from .. import db
from ..db import ConflictPolicy, insert_rows
from ..schemas import LegacyStoreSchema

logger = logging.getLogger(__name__)

# Epoch values above this are taken to be milliseconds.
_MILLISECOND_THRESHOLD = 1e11

# Namespace for ids derived from the content of id-less legacy reports.
LEGACY_REPORT_NAMESPACE = uuid.UUID("6f0c2a6e-3b9d-5c1a-9e4f-0d7b8a2c4e51")


class MigrationSummary(NamedTuple):
    accounts: int = 0
    reports: int = 0


def _table(target):
    """Accept either a model class or a ``Table``."""
    return getattr(target, "__table__", target)


def report_order_key(record: dict[str, Any], position: int, started_at: float) -> float:
    """Return the order key for the legacy report at ``position``.

    Uses the record's own ``timestamp`` when it parses (epoch seconds,
    epoch milliseconds or an ISO-8601 string). Otherwise the key is
    ``started_at - position`` seconds, so the first report in the file
    gets the largest key and the original newest-first order survives
    an ``ORDER BY order_key DESC``.
    """
    raw = record.get("timestamp")
    if isinstance(raw, bool):
        raw = None
    if isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError:
            value = math.nan
        if math.isfinite(value):
            return value / 1000.0 if value > _MILLISECOND_THRESHOLD else value
        logger.debug("Non-finite timestamp on legacy report %s", record.get("id"))
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = parse_date(raw)
        except (ValueError, OverflowError):
            logger.debug("Unparseable timestamp %r on legacy report %s", raw, record.get("id"))
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.timestamp()
    return started_at - position * 1.0


def _account_id(raw: Any) -> str:
    if raw is None or raw == "" or isinstance(raw, (bool, dict, list)):
        return str(uuid.uuid4())
    return str(raw)


def _account_rows(users: list[dict[str, Any]]) -> list[dict[str, Any]]:
    rows = []
    seen = set()
    for user in users:
        username = user.get("username")
        password_hash = user.get("password_hash")
        if not isinstance(username, str) or not isinstance(password_hash, str) \
                or not username or not password_hash:
            logger.warning("Skipping legacy account without username or password hash (id=%s)",
                           user.get("id"))
            continue
        if username in seen:
            continue
        seen.add(username)
        rows.append({
            "id": _account_id(user.get("id")),
            "username": username,
            "password_hash": password_hash,
        })
    return rows


def legacy_report_id(record: dict[str, Any], position: int) -> str:
    """Derive a stable id for a legacy report that has none.

    The same record at the same position always yields the same id, so
    importing an un-archived file again hits the existing row.
    """
    source = json.dumps(record, sort_keys=True, ensure_ascii=False, default=str)
    return str(uuid.uuid5(LEGACY_REPORT_NAMESPACE, f"{position}:{source}"))


def _report_rows(reports: list[dict[str, Any]], started_at: float) -> list[dict[str, Any]]:
    rows = []
    for position, record in enumerate(reports):
        if not record.get("id"):
            # written back so the id is also inside the stored payload
            record["id"] = legacy_report_id(record, position)
        token = record.get("liveActivityToken")
        rows.append({
            "id": str(record["id"]),
            "payload": json.dumps(record, ensure_ascii=False),
            "order_key": report_order_key(record, position, started_at),
            "live_activity_token": token or None,
        })
    return rows


def _load(path: Path) -> Optional[dict[str, Any]]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        logger.warning("Legacy store %s is empty; skipping migration", path)
        return None
    try:
        return LegacyStoreSchema().load(json.loads(text))
    except json.JSONDecodeError as exc:
        logger.error("Legacy store %s is not valid JSON (%s); skipping migration", path, exc)
    except SchemaValidationError as exc:
        logger.error("Legacy store %s has an unexpected shape: %s; skipping migration", path, exc.messages)
    return None


def _write_pass(session, table, rows, label: str) -> int:
    """Insert ``rows`` as one transaction; roll back everything on error."""
    try:
        written = insert_rows(session, table, rows, conflict=ConflictPolicy.IGNORE)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    logger.info("Migrated %d of %d legacy %s", written, len(rows), label)
    return written


def archive_path_for(path: Path, when: Optional[datetime] = None) -> Path:
    stamp = (when or datetime.now()).strftime("%Y%m%d%H%M%S")
    return path.with_name(f"{path.name}.migrated-{stamp}")


def migrate_legacy_store(
    legacy_path,
    accounts_table,
    reports_table,
    session=None,
    now: Optional[float] = None,
) -> MigrationSummary:
    """Import ``legacy_path`` into the accounts and reports tables.

    Parameters
    ----------
    legacy_path: str | Path
        Location of the legacy JSON store.
    accounts_table, reports_table:
        Target models (or ``Table`` objects) for accounts and reports.
    session: optional
        SQLAlchemy session; defaults to ``db.session``.
    now: float, optional
        Migration start time in epoch seconds, used for synthesised
        report order keys.

    Returns
    -------
    MigrationSummary
        Rows actually inserted in this pass. Never raises.
    """
    path = Path(legacy_path)
    if not path.exists():
        logger.debug("No legacy store at %s", path)
        return MigrationSummary()

    if session is None:
        session = db.session
    started_at = time.time() if now is None else now
    accounts = reports = 0
    try:
        data = _load(path)
        if data is None:
            return MigrationSummary()
        logger.info("Migrating legacy store %s (%d users, %d reports)",
                    path, len(data["users"]), len(data["reports"]))
        accounts = _write_pass(session, _table(accounts_table), _account_rows(data["users"]), "accounts")
        reports = _write_pass(session, _table(reports_table),
                              _report_rows(data["reports"], started_at), "reports")
    except Exception:
        logger.exception("Legacy store migration failed; %s left in place for the next start", path)
        return MigrationSummary(accounts, reports)

    try:
        archived = path.rename(archive_path_for(path))
    except OSError as exc:
        logger.error("Legacy store migrated but could not be archived: %s", exc)
    else:
        logger.info("Legacy store archived to %s", archived)
    return MigrationSummary(accounts, reports)
