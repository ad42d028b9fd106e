"""
API Utilities Module

FLOW OVERVIEW
- get_json_payload(required=())
  • Parse the JSON body, reject non-objects and report missing required fields.
- parse_date / parse_datetime
  • ISO date parsing with a field-specific validation error.
- apply_fields(instance, data, fields, converters)
  • Copy whitelisted keys from a payload onto a model instance.
- paginate(query, serializer)
  • page/per_page query arguments → {"items", "page", "per_page", "total"}.

Shared by the blueprints so request handling reads the same everywhere.
"""

import logging
from datetime import datetime, date, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from flask import request

from .errors import ValidationError

logger = logging.getLogger(__name__)


def get_json_payload(required: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Parse and validate the JSON request body.

    Args:
        required: Field names that must be present and non-empty

    Returns:
        The decoded JSON object

    Raises:
        ValidationError: body is missing, not an object, or lacks required fields
    """
    data = request.get_json(silent=True)
    if data is None:
        logger.warning(f"Invalid or missing JSON body on {request.path}")
        raise ValidationError('Invalid request format. JSON payload required.', 'INVALID_JSON')

    if not isinstance(data, dict):
        raise ValidationError('Request data must be a JSON object.', 'INVALID_DATA_TYPE')

    missing = {field: f"{field} is required" for field in required
               if data.get(field) in (None, '', [])}
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}",
                              'MISSING_FIELDS', errors=missing)
    return data


def parse_date(value, field: str) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date for {field}", errors={field: 'Invalid date'})


def parse_datetime(value, field: str) -> Optional[datetime]:
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).replace('Z', '+00:00')
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid date for {field}", errors={field: 'Invalid date'})
    # Stored datetimes are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.replace(tzinfo=None)


def apply_fields(instance, data: Dict[str, Any], fields: Iterable[str],
                 converters: Optional[Dict[str, Callable[[Any, str], Any]]] = None):
    """Set each whitelisted field present in `data` on `instance`"""
    converters = converters or {}
    for field in fields:
        if field in data:
            value = data[field]
            if field in converters:
                value = converters[field](value, field)
            setattr(instance, field, value)
    return instance


def paginate(query, serializer: Callable[[Any], Dict[str, Any]], max_per_page: int = 100):
    try:
        page = max(int(request.args.get('page', 1)), 1)
        per_page = min(max(int(request.args.get('per_page', 25)), 1), max_per_page)
    except ValueError:
        raise ValidationError('page and per_page must be integers')

    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        'items': [serializer(item) for item in items],
        'page': page,
        'per_page': per_page,
        'total': total,
    }
