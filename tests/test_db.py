"""Tests for the conflict-policy insert helper."""
import pytest
from sqlalchemy.exc import IntegrityError

from disaster_monitor import db
from disaster_monitor.db import ConflictPolicy, insert_rows
from disaster_monitor.models import Account


def _account(id_, username):
    return {"id": id_, "username": username, "password_hash": "h"}


def test_ignore_skips_rows_that_collide(app) -> None:
    table = Account.__table__
    assert insert_rows(db.session, table, [_account("1", "alice")], conflict=ConflictPolicy.IGNORE) == 1
    written = insert_rows(
        db.session,
        table,
        [_account("1", "carol"), _account("2", "alice"), _account("3", "bob")],
        conflict=ConflictPolicy.IGNORE,
    )
    db.session.commit()

    assert written == 1
    assert sorted(a.username for a in Account.query.all()) == ["alice", "bob"]


def test_ignore_with_conflict_target(app) -> None:
    table = Account.__table__
    insert_rows(db.session, table, [_account("1", "alice")])
    written = insert_rows(db.session, table, [_account("1", "carol")],
                          conflict=ConflictPolicy.IGNORE, conflict_target=["id"])
    assert written == 0


def test_error_policy_raises_on_collision(app) -> None:
    table = Account.__table__
    insert_rows(db.session, table, [_account("1", "alice")])
    with pytest.raises(IntegrityError):
        insert_rows(db.session, table, [_account("1", "alice")], conflict=ConflictPolicy.ERROR)
    db.session.rollback()


def test_empty_rows_write_nothing(app) -> None:
    assert insert_rows(db.session, Account.__table__, [], conflict=ConflictPolicy.IGNORE) == 0
