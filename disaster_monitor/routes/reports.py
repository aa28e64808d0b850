"""
Routes for disaster reports and their Live Activity tokens.

Reports are free-form JSON documents; the server only owns ``id``,
``liveActivityToken`` and the listing order. When a report that has a
bound Live Activity token is updated, the new state is pushed to the
device after the database commit. The push runs in the background, so
its outcome never affects the response.
"""

from __future__ import annotations

import logging
import time
import uuid

from flask import Blueprint, current_app, request
from marshmallow import ValidationError as SchemaValidationError

from .. import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import REPORT_ID_MAX_LENGTH, Report
from ..schemas import LiveActivityTokenSchema


logger = logging.getLogger(__name__)

reports_bp = Blueprint("reports", __name__)

# Fields the client may not overwrite through a report update.
_SERVER_OWNED_FIELDS = ("id", "liveActivityToken")


def _json_object() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _get_report(report_id: str) -> Report:
    report = db.session.get(Report, report_id)
    if report is None:
        raise NotFoundError(f"Report {report_id} not found.")
    return report


@reports_bp.route("/reports", methods=["GET"])
def list_reports() -> tuple[list[dict], int]:
    """List all reports, newest first."""
    reports = Report.query.order_by(Report.order_key.desc()).all()
    return [report.to_dict() for report in reports], 200


@reports_bp.route("/reports", methods=["POST"])
def create_report() -> tuple[dict, int]:
    """Create a report.

    The body is stored as-is. ``id`` is kept when supplied, otherwise a
    UUID is generated. Any ``liveActivityToken`` in the body is ignored;
    tokens are bound through ``/live-activity/token``.
    """
    data = _json_object()
    report_id = str(data.get("id") or uuid.uuid4())
    if len(report_id) > REPORT_ID_MAX_LENGTH:
        raise ValidationError("Invalid report id.",
                              {"id": [f"Longer than maximum length {REPORT_ID_MAX_LENGTH}."]})
    if db.session.get(Report, report_id) is not None:
        raise ConflictError(f"Report {report_id} already exists.")
    fields = {key: value for key, value in data.items() if key not in _SERVER_OWNED_FIELDS}
    fields["id"] = report_id
    report = Report(id=report_id, order_key=time.time(), live_activity_token=None)
    report.fields = fields
    db.session.add(report)
    db.session.commit()
    logger.info("New report %s: %s", report.id, report.title)
    return report.to_dict(), 201


@reports_bp.route("/reports/<report_id>", methods=["PUT"])
def update_report(report_id: str) -> tuple[dict, int]:
    """Merge the body into a report and push the change to its Live Activity."""
    report = _get_report(report_id)
    changes = {key: value for key, value in _json_object().items() if key not in _SERVER_OWNED_FIELDS}
    fields = report.fields
    fields.update(changes)
    report.fields = fields
    db.session.commit()
    logger.info("Report %s updated: %s", report.id, report.title)

    snapshot = report.to_dict()
    if report.live_activity_token:
        current_app.extensions["live_activity"].dispatch(report.live_activity_token, snapshot)
    return snapshot, 200


@reports_bp.route("/reports/<report_id>", methods=["DELETE"])
def delete_report(report_id: str) -> tuple[dict, int]:
    """Delete a report."""
    report = _get_report(report_id)
    db.session.delete(report)
    db.session.commit()
    return {"message": "Report deleted."}, 200


@reports_bp.route("/live-activity/token", methods=["POST"])
def bind_live_activity_token() -> tuple[dict, int]:
    """Bind a Live Activity push token to a report.

    Expects JSON with ``reportId`` and a non-empty ``token``. Binding
    again replaces the token; a bound report cannot be reset to none.
    """
    try:
        data = LiveActivityTokenSchema().load(_json_object())
    except SchemaValidationError as err:
        raise ValidationError("Invalid live activity token request.", err.messages)
    report = _get_report(data["report_id"])
    report.live_activity_token = data["token"]
    db.session.commit()
    logger.info("Live activity token bound to report %s", report.id)
    return {"message": "Token saved."}, 200
