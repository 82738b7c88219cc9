from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Union

import structlog

from .conditions import evaluate_conditions
from .models import Action, ActionType, Rule, RuleChange, RuleIssue
from .transforms import RuleConfigurationError, TransformError, registry as transform_registry
from .values import RecordView

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Applied:
    record: Dict[str, Any]
    changes: tuple[RuleChange, ...] = ()
    issues: tuple[RuleIssue, ...] = ()

    suppressed: ClassVar[bool] = False


@dataclass(frozen=True)
class Suppressed:
    record: Dict[str, Any]
    rule_id: str
    rule_name: str = ""
    changes: tuple[RuleChange, ...] = ()
    issues: tuple[RuleIssue, ...] = ()

    suppressed: ClassVar[bool] = True


EvaluationResult = Union[Applied, Suppressed]


def order_rules(rules: Iterable[Rule]) -> List[Rule]:
    """Active rules in execution order; ties on `rule_order` fall back to the rule id."""
    return sorted((rule for rule in rules if rule.active), key=lambda r: (r.rule_order, r.id))


class RuleEngine:
    def __init__(self, rules: Iterable[Rule]):
        self._rules = order_rules(rules)

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules)

    def evaluate(self, record: Mapping[str, Any]) -> EvaluationResult:
        working: Dict[str, Any] = copy.deepcopy(dict(record))
        changes: List[RuleChange] = []
        issues: List[RuleIssue] = []

        for rule in self._rules:
            if not evaluate_conditions(rule.conditions, rule.logic, RecordView(working)):
                continue

            for index, action in enumerate(rule.actions):
                if action.type == ActionType.IGNORE_ROW:
                    changes.append(RuleChange(rule_id=rule.id, rule_name=rule.name, action=action.type))
                    logger.debug("row_suppressed", rule_id=rule.id, rule_name=rule.name)
                    return Suppressed(
                        record=working,
                        rule_id=rule.id,
                        rule_name=rule.name,
                        changes=tuple(changes),
                        issues=tuple(issues),
                    )

                try:
                    change = _apply_action(rule, action, working)
                except TransformError as exc:
                    issues.append(
                        RuleIssue(rule_id=rule.id, rule_name=rule.name, action_index=index, message=str(exc))
                    )
                    logger.warning(
                        "rule_action_failed",
                        rule_id=rule.id,
                        action_index=index,
                        error=str(exc),
                    )
                    continue
                if change is not None:
                    changes.append(change)

        return Applied(record=working, changes=tuple(changes), issues=tuple(issues))


def _apply_action(rule: Rule, action: Action, working: Dict[str, Any]) -> Optional[RuleChange]:
    problem = action.configuration_issue()
    if problem:
        raise RuleConfigurationError(problem)

    if action.type == ActionType.SET_FIELD:
        old_value = working.get(action.field)
        working[action.field] = copy.deepcopy(action.value)
        return RuleChange(
            rule_id=rule.id,
            rule_name=rule.name,
            action=action.type,
            field=action.field,
            old_value=old_value,
            new_value=action.value,
        )

    if action.type == ActionType.TRANSFORM_FIELD:
        old_value = working.get(action.field)
        new_value = transform_registry.apply(action.transform, old_value, action.parameter)
        target = action.destination
        working[target] = new_value
        return RuleChange(
            rule_id=rule.id,
            rule_name=rule.name,
            action=action.type,
            field=action.field,
            target_field=target,
            transform=action.transform,
            old_value=old_value,
            new_value=new_value,
        )

    return None


def apply_rules(record: Mapping[str, Any], rules: Iterable[Rule]) -> EvaluationResult:
    return RuleEngine(rules).evaluate(record)
