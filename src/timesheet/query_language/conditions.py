"""Field conditions produced by the interpreter and evaluated by the executor."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True, slots=True)
class RelativeDate:
    """Date keyword resolved against the evaluation date."""

    name: str

    def resolve(self, today: date) -> date:
        """Return the concrete date for today, yesterday or last_month."""
        match self.name:
            case "yesterday":
                return today - timedelta(days=1)
            case "last_month":
                first_of_month = today.replace(day=1)
                return (first_of_month - timedelta(days=1)).replace(day=1)
        return today


@dataclass(frozen=True, slots=True)
class FieldCondition:
    """Comparison of one named field against a value.

    `value` is a tuple for IN/NOT IN, a `(start, end)` pair for BETWEEN and
    None for IS [NOT] NULL.
    """

    field: str
    operator: str
    value: object = None


def resolve_value(value: object, today: date) -> object:
    """Replace relative dates with concrete dates, recursively for tuples."""
    if isinstance(value, RelativeDate):
        return value.resolve(today)
    if isinstance(value, tuple):
        return tuple(resolve_value(item, today) for item in value)
    return value


def like_regex(pattern: str) -> re.Pattern[str]:
    """Translate a LIKE pattern (`%` and `_` wildcards) into a regex."""
    parts: list[str] = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _normalize(value: object) -> object:
    if isinstance(value, str):
        return value.casefold()
    return value


def compare_values(actual: object, operator: str, expected: object) -> bool:  # noqa: PLR0911
    """Compare two values; strings compare case-insensitively.

    Incomparable values never match.
    """
    if actual is None or expected is None:
        return operator == "!=" and actual is not expected
    left = _normalize(actual)
    right = _normalize(expected)
    try:
        match operator:
            case "=":
                return left == right
            case "!=":
                return left != right
            case ">":
                return left > right  # type: ignore[operator]
            case "<":
                return left < right  # type: ignore[operator]
            case ">=":
                return left >= right  # type: ignore[operator]
            case "<=":
                return left <= right  # type: ignore[operator]
            case "contains":
                return str(right) in str(left)
            case "startsWith":
                return str(left).startswith(str(right))
            case "endsWith":
                return str(left).endswith(str(right))
    except TypeError:
        return False
    return False


def evaluate_condition(actual: object, condition: FieldCondition, today: date) -> bool:
    """Return whether a field value satisfies the condition."""
    value = resolve_value(condition.value, today)
    match condition.operator:
        case "IS NULL":
            return actual is None or actual == ""
        case "IS NOT NULL":
            return actual is not None and actual != ""
        case "IN" if isinstance(value, tuple):
            return any(compare_values(actual, "=", item) for item in value)
        case "NOT IN" if isinstance(value, tuple):
            return not any(compare_values(actual, "=", item) for item in value)
        case "LIKE" | "NOT LIKE":
            matched = (
                isinstance(actual, str) and like_regex(str(value)).fullmatch(actual) is not None
            )
            return matched if condition.operator == "LIKE" else not matched
        case "BETWEEN" if isinstance(value, tuple) and len(value) == 2:
            start, end = value
            return compare_values(actual, ">=", start) and compare_values(actual, "<=", end)
    return compare_values(actual, condition.operator, value)
