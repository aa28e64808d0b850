"""
Marshmallow schemas for the Natural Disaster Monitor.

Reports themselves are free-form JSON and are not validated field by
field. The schemas here cover the two inputs with a fixed shape: the
live activity token binding request and the legacy ``db.json``
document read by the store migration.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate


class LiveActivityTokenSchema(Schema):
    """Body of ``POST /api/live-activity/token``."""

    class Meta:
        unknown = EXCLUDE

    report_id = fields.String(
        data_key="reportId", required=True, validate=validate.Length(min=1)
    )
    token = fields.String(required=True, validate=validate.Length(min=1, max=255))


class LegacyAccountSchema(Schema):
    """An entry of the legacy ``users`` list.

    Fields are loaded as-is. Missing or non-text names and hashes are
    skipped by the migration, and ids of any type are converted to
    text there, so one odd account never rejects the whole document.
    """

    class Meta:
        unknown = EXCLUDE

    id = fields.Raw(load_default=None, allow_none=True)
    username = fields.Raw(load_default=None, allow_none=True)
    password_hash = fields.Raw(data_key="passwordHash", load_default=None, allow_none=True)


class LegacyStoreSchema(Schema):
    """The whole legacy document: ``{"users": [...], "reports": [...]}``."""

    class Meta:
        unknown = EXCLUDE

    users = fields.List(fields.Nested(LegacyAccountSchema), load_default=list)
    # Reports are stored verbatim, so only their object shape is checked
    reports = fields.List(fields.Dict(), load_default=list)
