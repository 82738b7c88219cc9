from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

from .models import Condition, ConditionLogic, DataType, Operator
from .values import RecordView, as_text, coerce_date, coerce_decimal


@lru_cache(maxsize=256)
def _compile(pattern: str, case_sensitive: bool) -> re.Pattern[str]:
    return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)


def evaluate_condition(condition: Condition, record: RecordView) -> bool:
    operator = condition.operator

    if operator == Operator.IS_EMPTY:
        return record.is_blank(condition.field)
    if operator == Operator.IS_NOT_EMPTY:
        return not record.is_blank(condition.field)

    # Any other operator on a field the candidate does not carry is false.
    if not record.has(condition.field):
        return False

    if condition.data_type == DataType.NUMBER:
        return _compare(operator, record.number(condition.field), coerce_decimal(condition.value))
    if condition.data_type == DataType.DATE:
        return _compare(operator, record.date(condition.field), coerce_date(condition.value))
    return _compare_text(condition, record.text(condition.field) or "")


def _compare(operator: Operator, left, right) -> bool:
    if left is None or right is None:
        return False
    if operator == Operator.EQUALS:
        return left == right
    if operator == Operator.GREATER_THAN:
        return left > right
    if operator == Operator.LESS_THAN:
        return left < right
    if operator == Operator.GREATER_OR_EQUAL:
        return left >= right
    if operator == Operator.LESS_OR_EQUAL:
        return left <= right
    return False


def _compare_text(condition: Condition, field_text: str) -> bool:
    operator = condition.operator
    expected = as_text(condition.value)

    if operator == Operator.MATCHES:
        return _compile(expected, condition.case_sensitive).search(field_text) is not None

    if not condition.case_sensitive:
        field_text = field_text.casefold()
        expected = expected.casefold()

    if operator == Operator.EQUALS:
        return field_text == expected
    if operator == Operator.CONTAINS:
        return expected in field_text
    if operator == Operator.STARTS_WITH:
        return field_text.startswith(expected)
    if operator == Operator.ENDS_WITH:
        return field_text.endswith(expected)
    return False


def evaluate_conditions(
    conditions: Iterable[Condition],
    logic: ConditionLogic,
    record: RecordView,
) -> bool:
    """Combine condition results; a rule without conditions always matches."""
    results = [evaluate_condition(condition, record) for condition in conditions]
    if not results:
        return True
    if logic == ConditionLogic.ALL:
        return all(results)
    return any(results)
