"""Centralised error handling and custom exceptions.

Route handlers and services raise the exceptions defined here to
signal a specific failure without coupling themselves to HTTP
status codes. The application factory registers a single handler
that serialises any ``ApiError`` into a JSON body of the form
``{"error": {"code": ..., "message": ...}}``.

Push delivery and the legacy store migration never raise these:
their failures are logged and absorbed.
"""
from __future__ import annotations

from flask import jsonify


class ApiError(Exception):
    """Base class for errors rendered as JSON responses."""

    code = "API_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}

    def to_response(self):
        return jsonify({"error": self.to_dict()}), self.status_code


class ValidationError(ApiError):
    """Raised when request input fails validation."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, fields: dict | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["fields"] = self.fields
        return body


class NotFoundError(ApiError):
    """Raised when a requested report does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ApiError):
    """Raised when a report id is already taken."""

    code = "CONFLICT"
    status_code = 409


def register_error_handlers(app) -> None:
    """Register the ``ApiError`` handler on the given Flask app."""
    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        return err.to_response()
