"""Rule engine for import processing rules.

This package contains only domain logic:
- Rules are plain pydantic models supplied by the rule-authoring side.
- Evaluation is pure and deterministic over one candidate field bag.
- No store, file or network access lives here.
"""

from .engine import Applied, EvaluationResult, RuleEngine, Suppressed, apply_rules, order_rules
from .models import (
    Action,
    ActionType,
    Condition,
    ConditionLogic,
    DataType,
    Operator,
    Rule,
    RuleChange,
    RuleIssue,
)
from .transforms import RuleConfigurationError, TransformError, apply_transform
from .values import RecordView

__all__ = [
    "Action",
    "ActionType",
    "Applied",
    "Condition",
    "ConditionLogic",
    "DataType",
    "EvaluationResult",
    "Operator",
    "RecordView",
    "Rule",
    "RuleChange",
    "RuleConfigurationError",
    "RuleEngine",
    "RuleIssue",
    "Suppressed",
    "TransformError",
    "apply_rules",
    "apply_transform",
    "order_rules",
]
