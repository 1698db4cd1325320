# apps/core/utils.py

"""
Request helpers shared by the JSON views
"""

import json
from datetime import datetime, time

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import ValidationError


def parse_json_body(request):
    """Request body as a dict; an empty body is an empty dict"""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (TypeError, ValueError):
        raise ValidationError('Invalid JSON body')
    if not isinstance(data, dict):
        raise ValidationError('JSON body must be an object')
    return data


def require_text(data, field, message):
    """Non-blank string value of ``field``, stripped"""
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def parse_position(value):
    """Non-negative integer position (booleans are not positions)"""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError('Valid position is required')
    return value


def parse_due_date(value):
    """
    Due date from an ISO 8601 datetime or date string

    Dates without a time are due at midnight; naive values are taken in the
    current timezone.
    """
    if value in (None, ''):
        return None
    if not isinstance(value, str):
        raise ValidationError('Invalid due date')

    try:
        parsed = parse_datetime(value)
        if parsed is None:
            day = parse_date(value)
            parsed = datetime.combine(day, time.min) if day else None
    except ValueError:
        parsed = None

    if parsed is None:
        raise ValidationError('Invalid due date')
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def parse_labels(value):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(label, str) for label in value):
        raise ValidationError('Labels must be a list of strings')
    return value
