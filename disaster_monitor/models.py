"""
Database models for the Natural Disaster Monitor.

Two tables back the service. ``accounts`` holds operator accounts
carried over from the legacy flat-file store; ``reports`` holds
disaster reports. A report keeps its client-supplied fields as an
opaque JSON ``payload`` so clients can add fields without a schema
change; only the columns the server itself sorts or filters on are
broken out. Reports are listed newest first by ``order_key``.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional

from . import db

REPORT_ID_MAX_LENGTH = 64


class Account(db.Model):
    __allow_unmapped__ = True  # allow unmapped type annotations for SQLAlchemy 2.0
    """An operator account.

    Password hashes are stored exactly as the legacy store produced
    them (bcrypt strings) and are never returned by the API.
    """
    __tablename__ = "accounts"

    id: str = db.Column(db.String(36), primary_key=True)
    username: str = db.Column(db.String(80), unique=True, nullable=False)
    password_hash: str = db.Column(db.String(128), nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.username}>"


class Report(db.Model):
    __allow_unmapped__ = True
    """A disaster report.

    ``payload`` is the full report record as JSON text. ``id`` and
    ``live_activity_token`` are authoritative in their columns and are
    overlaid on the payload when the report is serialised.
    """
    __tablename__ = "reports"

    id: str = db.Column(db.String(REPORT_ID_MAX_LENGTH), primary_key=True)
    payload: str = db.Column(db.Text, nullable=False, default="{}")
    # Unix epoch seconds; newest report has the largest key
    order_key: float = db.Column(db.Float, nullable=False, index=True, default=time.time)
    live_activity_token: Optional[str] = db.Column(db.String(255), nullable=True)

    @property
    def fields(self) -> dict[str, Any]:
        return json.loads(self.payload or "{}")

    @fields.setter
    def fields(self, value: dict[str, Any]) -> None:
        self.payload = json.dumps(value, ensure_ascii=False)

    @property
    def title(self) -> Optional[str]:
        return self.fields.get("title")

    def to_dict(self) -> dict[str, Any]:
        """Return the report as clients see it."""
        data = self.fields
        data["id"] = self.id
        data["liveActivityToken"] = self.live_activity_token
        return data

    def __repr__(self) -> str:
        return f"<Report {self.id}>"
