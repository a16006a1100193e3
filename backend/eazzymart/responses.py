# Overview: JSON envelope helpers shared by every blueprint.

"""
Every endpoint answers

    {"success": true|false, "message": "...", ...data}

Failures carry the DomainError details at the top level (for example
current_status / allowed_statuses on an invalid transition).
"""

from __future__ import annotations

from flask import current_app, jsonify

from .errors import DomainError
from .extensions import db


def ok(message: str = "OK", status: int = 200, **data):
    body = {"success": True, "message": message}
    body.update(data)
    return jsonify(body), status


def fail(message: str, status: int = 400, **data):
    body = {"success": False, "message": message}
    body.update(data)
    return jsonify(body), status


def domain_error(exc: DomainError):
    db.session.rollback()
    return fail(exc.message, exc.status_code, **exc.details)


def server_error(log_message: str):
    """Log the active exception and answer a generic 500."""
    db.session.rollback()
    current_app.logger.exception(log_message)
    return fail("Internal server error", 500)
