"""
Value coercion at the form-data boundary.

Form data arrives as raw scalars, JSON-encoded strings (multi-select and
collection fields) or native Python objects. Condition operands arrive as
JSON values from the template. Everything the evaluator compares passes
through the helpers here, so the comparison code never inspects types itself.
"""
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

_DATE_FORMATS = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d %B %Y",
    "%d %b %Y",
    "%Y/%m/%d",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
)

_TRUTHY_WORDS = {"true", "yes", "1", "on"}


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def decode_operand(value: Any) -> Any:
    """Decode a JSON-encoded array string; anything else is returned as is."""
    if isinstance(value, str) and value.lstrip().startswith("["):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def as_text_list(value: Any) -> Optional[List[str]]:
    """Operand of in/notIn as a list of strings, or None when it is not list-like."""
    value = decode_operand(value)
    if isinstance(value, (list, tuple)):
        return [to_text(v) for v in value]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return None


def as_pair(value: Any) -> Optional[tuple]:
    value = decode_operand(value)
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return value[0], value[1]
    return None


def parse_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    text = to_text(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = to_text(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return None


def is_truthy(value: Any) -> bool:
    parsed = parse_bool(value)
    if parsed is not None:
        return parsed
    return to_text(value).strip().lower() in _TRUTHY_WORDS


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = to_text(value).strip()
    if not text:
        return None
    try:
        return _naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def is_blank(value: Any) -> bool:
    return value is None or not to_text(value).strip()
