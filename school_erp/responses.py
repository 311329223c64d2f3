from datetime import date, datetime
from decimal import Decimal

from flask import jsonify


def to_json(value):
    """Convert ORM-derived values into JSON-safe primitives."""
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat() + ('Z' if value.tzinfo is None else '')
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def ok(data=None, status=200):
    return jsonify({'success': True, 'data': to_json(data)}), status


def created(data=None):
    return ok(data, 201)
