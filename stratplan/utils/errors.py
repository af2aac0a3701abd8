"""Standardised API error responses.

Usage
-----
    from stratplan.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")

Blueprints that call the service layer register the shared handlers once:

    register_service_error_handlers(hierarchy_bp)
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from stratplan.core.exceptions import (
    ConflictError,
    CrossTenantViolationError,
    NotFoundError,
    ValidationError,
)
from stratplan.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Malformed input – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business rule violated – HTTP 422
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Permissions / isolation – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"
    CROSS_TENANT = "ERR_CROSS_TENANT"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.FORBIDDEN: 403,
    E.CROSS_TENANT: 403,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field-level validation breakdown).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_service_error_handlers(bp) -> None:
    """Map service-layer exceptions to HTTP responses on *bp*.

    Every handler rolls the session back first, so an aborted operation
    leaves nothing pending.
    """

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(CrossTenantViolationError)
    def _handle_cross_tenant(error: CrossTenantViolationError):
        db.session.rollback()
        logger.warning("Cross-tenant violation on %s: %s", request.endpoint, error)
        return api_error(E.CROSS_TENANT, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
