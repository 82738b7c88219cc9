from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

from .values import coerce_date, coerce_decimal, is_blank


class Operator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    MATCHES = "matches"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class DataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"


class ConditionLogic(str, Enum):
    ALL = "ALL"
    ANY = "ANY"


class ActionType(str, Enum):
    SET_FIELD = "SET_FIELD"
    TRANSFORM_FIELD = "TRANSFORM_FIELD"
    IGNORE_ROW = "IGNORE_ROW"


ORDERING_OPERATORS = frozenset(
    {
        Operator.GREATER_THAN,
        Operator.LESS_THAN,
        Operator.GREATER_OR_EQUAL,
        Operator.LESS_OR_EQUAL,
    }
)
TEXT_OPERATORS = frozenset({Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH, Operator.MATCHES})
EMPTINESS_OPERATORS = frozenset({Operator.IS_EMPTY, Operator.IS_NOT_EMPTY})


def allowed_data_types(operator: Operator) -> frozenset[DataType]:
    if operator in ORDERING_OPERATORS:
        return frozenset({DataType.NUMBER, DataType.DATE})
    if operator in TEXT_OPERATORS:
        return frozenset({DataType.STRING})
    return frozenset(DataType)


class Condition(BaseModel):
    field: str
    operator: Operator
    value: Any = None
    # Inferred when omitted: ordering operators and `equals` against a numeric value compare numbers,
    # the rest compare text.
    data_type: Optional[DataType] = None
    case_sensitive: bool = True

    @model_validator(mode="after")
    def _check_compatibility(self) -> "Condition":
        if not self.field or not self.field.strip():
            raise ValueError("condition field is required")
        if self.data_type is None:
            numeric_value = isinstance(self.value, (int, float, Decimal)) and not isinstance(self.value, bool)
            if self.operator in ORDERING_OPERATORS or (self.operator == Operator.EQUALS and numeric_value):
                self.data_type = DataType.NUMBER
            else:
                self.data_type = DataType.STRING

        if self.data_type not in allowed_data_types(self.operator):
            raise ValueError(
                f"operator '{self.operator.value}' cannot compare {self.data_type.value} values"
            )
        if self.operator in EMPTINESS_OPERATORS:
            return self

        if is_blank(self.value) and self.operator != Operator.EQUALS:
            raise ValueError(f"operator '{self.operator.value}' requires a comparison value")
        if self.data_type == DataType.NUMBER and coerce_decimal(self.value) is None:
            raise ValueError(f"comparison value {self.value!r} is not a number")
        if self.data_type == DataType.DATE and coerce_date(self.value) is None:
            raise ValueError(f"comparison value {self.value!r} is not an ISO date")
        if self.operator == Operator.MATCHES:
            try:
                re.compile(str(self.value))
            except re.error as exc:
                raise ValueError(f"invalid regular expression {self.value!r}: {exc}") from exc
        return self


class Action(BaseModel):
    type: ActionType
    field: str = ""
    value: Any = None
    transform: str = ""
    parameter: Optional[Decimal] = None
    # Defaults to `field` when empty.
    target_field: str = ""

    @property
    def destination(self) -> str:
        return self.target_field or self.field

    def configuration_issue(self) -> Optional[str]:
        """Return a human readable problem with this action, or None when it is runnable."""
        from .transforms import registry as transform_registry

        if self.type == ActionType.IGNORE_ROW:
            return None
        if not self.field.strip():
            return f"{self.type.value} action has no field"
        if self.type == ActionType.TRANSFORM_FIELD:
            if not self.transform:
                return "TRANSFORM_FIELD action has no transform"
            if self.transform not in transform_registry:
                return f"unknown transform '{self.transform}'"
            spec = transform_registry.get(self.transform)
            if spec.requires_parameter and self.parameter is None:
                return f"transform '{self.transform}' requires a numeric parameter"
        return None


class Rule(BaseModel):
    id: str
    name: str = ""
    active: bool = True
    # Ascending: lower values run first.
    rule_order: int = 0
    logic: ConditionLogic = ConditionLogic.ANY
    conditions: List[Condition] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=list)

    def configuration_issues(self) -> List[str]:
        issues: List[str] = []
        for index, action in enumerate(self.actions):
            problem = action.configuration_issue()
            if problem:
                issues.append(f"action {index + 1}: {problem}")
        return issues


class RuleChange(BaseModel):
    rule_id: str
    rule_name: str = ""
    action: ActionType
    field: str = ""
    target_field: str = ""
    transform: str = ""
    old_value: Any = None
    new_value: Any = None


class RuleIssue(BaseModel):
    rule_id: str
    rule_name: str = ""
    action_index: int
    message: str
