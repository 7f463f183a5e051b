"""
Leaf condition evaluation.

A condition reads one trigger field from the form-data snapshot and compares
it with the condition's operand. Evaluation never raises: parse failures,
bad patterns and unsupported operators all evaluate to False.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .config import EngineSettings, get_settings
from .patterns import PatternMatcher
from .schema import Condition
from .values import (
    as_pair,
    as_text_list,
    is_blank,
    is_truthy,
    parse_bool,
    parse_date,
    parse_decimal,
    to_text,
)

logger = logging.getLogger(__name__)


def _fold(value: Any) -> str:
    return to_text(value).casefold()


def _equals(left: Any, right: Any, data_type: str) -> bool:
    if data_type == "number":
        a, b = parse_decimal(left), parse_decimal(right)
        return a is not None and b is not None and a == b
    if data_type == "boolean":
        a, b = parse_bool(left), parse_bool(right)
        return a is not None and b is not None and a == b
    if data_type == "date":
        a, b = parse_date(left), parse_date(right)
        return a is not None and b is not None and a.date() == b.date()
    return _fold(left) == _fold(right)


def _order(left: Any, right: Any, data_type: str) -> Optional[int]:
    """-1, 0 or 1 for left vs right, or None when either side does not parse."""
    if data_type == "number":
        a, b = parse_decimal(left), parse_decimal(right)
    elif data_type == "date":
        a, b = parse_date(left), parse_date(right)
    else:
        a, b = _fold(left), _fold(right)
    if a is None or b is None:
        return None
    return (a > b) - (a < b)


def _greater(left: Any, right: Any, data_type: str) -> bool:
    return _order(left, right, data_type) == 1


def _less(left: Any, right: Any, data_type: str) -> bool:
    return _order(left, right, data_type) == -1


def _greater_or_equal(left: Any, right: Any, data_type: str) -> bool:
    return _greater(left, right, data_type) or _equals(left, right, data_type)


def _less_or_equal(left: Any, right: Any, data_type: str) -> bool:
    return _less(left, right, data_type) or _equals(left, right, data_type)


def _in(left: Any, right: Any, data_type: str) -> bool:
    options = as_text_list(right)
    if options is None:
        return False
    needle = _fold(left)
    return any(option.casefold() == needle for option in options)


def _between(left: Any, right: Any, data_type: str) -> bool:
    bounds = as_pair(right)
    if bounds is None:
        return False
    low, high = bounds
    return _greater_or_equal(left, low, data_type) and _less_or_equal(left, high, data_type)


def _has_length(left: Any, right: Any, data_type: str) -> bool:
    if isinstance(right, bool):
        return False
    try:
        expected = int(to_text(right).strip())
    except ValueError:
        return False
    return len(to_text(left)) == expected


_Comparison = Callable[[Any, Any, str], bool]

_COMPARISONS: Dict[str, _Comparison] = {
    "equals": _equals,
    "notequals": lambda f, o, t: not _equals(f, o, t),
    "in": _in,
    "notin": lambda f, o, t: not _in(f, o, t),
    "contains": lambda f, o, t: _fold(o) in _fold(f),
    "startswith": lambda f, o, t: _fold(f).startswith(_fold(o)),
    "endswith": lambda f, o, t: _fold(f).endswith(_fold(o)),
    "greaterthan": _greater,
    "lessthan": _less,
    "greaterthanorequal": _greater_or_equal,
    "lessthanorequal": _less_or_equal,
    "between": _between,
    "isempty": lambda f, o, t: is_blank(f),
    "isnotempty": lambda f, o, t: not is_blank(f),
    "istrue": lambda f, o, t: is_truthy(f),
    "isfalse": lambda f, o, t: not is_truthy(f),
    "haslength": _has_length,
}

_PATTERN_OPERATORS = ("matchespattern", "isvalidemail", "isvalidphone")


def is_supported_operator(operator: str) -> bool:
    op = (operator or "").lower()
    return op in _COMPARISONS or op in _PATTERN_OPERATORS


class ConditionEvaluator:
    def __init__(self, settings: Optional[EngineSettings] = None, matcher: Optional[PatternMatcher] = None):
        self.settings = settings or get_settings()
        self.matcher = matcher or PatternMatcher(self.settings)

    def evaluate(self, condition: Condition, form_data: Mapping[str, Any]) -> bool:
        op = (condition.operator or "").lower()
        data_type = (condition.data_type or "string").lower()
        field_value = form_data.get(condition.trigger_field)
        try:
            if op == "matchespattern":
                return self.matcher.matches(to_text(condition.value), to_text(field_value))
            if op == "isvalidemail":
                return self.matcher.is_email(to_text(field_value))
            if op == "isvalidphone":
                return self.matcher.is_phone(to_text(field_value))
            comparison = _COMPARISONS.get(op)
            if comparison is None:
                logger.warning(
                    "Unsupported operator '%s' on field '%s'", condition.operator, condition.trigger_field
                )
                return False
            return comparison(field_value, condition.value, data_type)
        except Exception:
            logger.exception(
                "Error evaluating condition for field '%s' with operator '%s'",
                condition.trigger_field,
                condition.operator,
            )
            return False
