"""Request parameter formatting and response date parsing helpers."""

import json
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_DATE_FIELDS = ("created_at", "updated_at")


def isoformat_utc(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with millisecond precision.

    Naive datetimes are taken to be UTC already.

    Example: datetime(2023, 1, 1, tzinfo=timezone.utc) -> "2023-01-01T00:00:00.000Z"
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return isoformat_utc(datetime.now(timezone.utc))


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _format_scalar(value.value)
    if isinstance(value, datetime):
        return isoformat_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def format_request_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Serialize query parameters into flat strings.

    - None values are dropped
    - lists, tuples and sets are joined with commas
    - datetimes become ISO-8601 UTC strings, dates ISO dates
    - dicts are JSON-serialized
    - booleans become "true"/"false", enums their value

    Args:
        params: Raw parameter mapping

    Returns:
        Mapping of parameter name to string value
    """
    result: Dict[str, str] = {}
    if not params:
        return result

    for key, value in params.items():
        if value is None:
            continue

        if isinstance(value, (list, tuple, set, frozenset)):
            items: Iterable[Any] = value
            if isinstance(value, (set, frozenset)):
                items = sorted(value, key=str)
            result[key] = ",".join(_format_scalar(item) for item in items)
        elif isinstance(value, dict):
            result[key] = json.dumps(value, default=_json_default)
        else:
            result[key] = _format_scalar(value)

    return result


def _parse_datetime(value: str) -> Optional[datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_api_dates(
    item: Optional[Mapping[str, Any]],
    date_fields: Sequence[str] = DEFAULT_DATE_FIELDS,
) -> Optional[Dict[str, Any]]:
    """Return a copy of item with ISO date strings parsed into datetimes.

    Fields that are missing, not strings, or not parseable are left as-is.
    """
    if not item:
        return dict(item) if item is not None else None

    result = dict(item)
    for field_name in date_fields:
        value = result.get(field_name)
        if isinstance(value, str):
            parsed = _parse_datetime(value)
            if parsed is not None:
                result[field_name] = parsed
            else:
                logger.debug(f"Could not parse date field {field_name}: {value!r}")
    return result


def parse_api_dates_list(
    items: Iterable[Mapping[str, Any]],
    date_fields: Sequence[str] = DEFAULT_DATE_FIELDS,
) -> List[Dict[str, Any]]:
    """Apply parse_api_dates to every item of a list."""
    return [parse_api_dates(item, date_fields) or {} for item in items]
