"""
StoryDesk
Blueprint registry and shared request helpers.

Services raise the exceptions from ``storydesk.core.exceptions``; every API
blueprint maps them to HTTP status codes through register_error_handlers().
Malformed transport input (non-object JSON bodies, non-string text fields,
non-integer query params) is rejected here with a 400 before a service is called.
"""

import logging

from flask import abort, jsonify, request
from werkzeug.exceptions import HTTPException

from storydesk.core.exceptions import (
    ConflictError,
    ImportFailure,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def json_body(*text_fields: str) -> dict:
    """Request JSON object, ``{}`` for an empty body; 400 for anything else.

    Each name in ``text_fields`` must be a string or null when present.
    """
    if not request.get_data(cache=True):
        return {}
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    for name in text_fields:
        value = data.get(name)
        if value is not None and not isinstance(value, str):
            abort(400, description=f"Field '{name}' must be a string")
    return data


def query_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        abort(400, description=f"Query parameter '{name}' must be an integer")


def query_bool(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


def register_error_handlers(bp) -> None:
    """Attach the service-exception -> HTTP mapping to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return jsonify({"error": str(error)}), 404

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return jsonify({"error": str(error), "details": error.details}), 422

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return jsonify({"error": str(error), "field": error.field}), 409

    @bp.errorhandler(ImportFailure)
    def _handle_import_failure(error: ImportFailure):
        return jsonify({"error": str(error), "failed_ids": error.failed_ids}), 409

    @bp.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        return jsonify({"error": "Storage unavailable", "detail": str(error)}), 503

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error"}), 500
