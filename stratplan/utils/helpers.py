"""Shared utility functions used by services and blueprints.

parse_date:     returns None on bad input
request_json:   JSON body as a dict, or an error tuple
"""
import logging
from datetime import date, datetime

from flask import request

from stratplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def request_json():
    """Return ``(payload, None)`` for a JSON object body, else ``(None, error)``.

    An empty body counts as ``{}``.

        data, err = request_json()
        if err:
            return err
    """
    if not request.get_data(cache=True):
        return {}, None
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return payload, None

