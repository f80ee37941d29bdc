from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from woapp.extensions import db

bp = Blueprint("errors", __name__)


@bp.app_errorhandler(404)
def handle_not_found(error: HTTPException):
    return jsonify({"error": error.description or "Not found.", "path": request.path}), 404


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    # Allow HTTP errors that are not 500 to propagate to their default handlers.
    if isinstance(error, HTTPException) and error.code != 500:
        return error

    db.session.rollback()
    current_app.logger.exception("Unhandled exception", exc_info=error)

    error_message = "Internal Server Error"
    if isinstance(error, HTTPException) and error.description:
        error_message = error.description

    return (
        jsonify(
            {
                "error": error_message,
                "endpoint": request.endpoint,
                "path": request.path,
            }
        ),
        500,
    )
