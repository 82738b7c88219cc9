from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .models import (
    ActionType,
    ConditionLogic,
    DataType,
    EMPTINESS_OPERATORS,
    Operator,
    Rule,
    allowed_data_types,
)
from .transforms import registry as transform_registry


class OperatorEntry(BaseModel):
    operator: str
    data_types: List[str]
    requires_value: bool


class TransformEntry(BaseModel):
    key: str
    label: str = ""
    data_type: str
    requires_parameter: bool = False


class RuleCatalog(BaseModel):
    operators: List[OperatorEntry] = Field(default_factory=list)
    data_types: List[str] = Field(default_factory=list)
    logic: List[str] = Field(default_factory=list)
    action_types: List[str] = Field(default_factory=list)
    transforms: List[TransformEntry] = Field(default_factory=list)
    rule_schema: Dict[str, Any] = Field(default_factory=dict)


def build_catalog() -> RuleCatalog:
    """Describe everything a rule editor may offer, in a stable order."""
    operators = [
        OperatorEntry(
            operator=op.value,
            data_types=sorted(dt.value for dt in allowed_data_types(op)),
            requires_value=op not in EMPTINESS_OPERATORS,
        )
        for op in Operator
    ]
    transforms = sorted(
        (
            TransformEntry(
                key=spec.key,
                label=spec.label,
                data_type=spec.data_type.value,
                requires_parameter=spec.requires_parameter,
            )
            for spec in transform_registry.specs()
        ),
        key=lambda entry: entry.key,
    )
    return RuleCatalog(
        operators=operators,
        data_types=[dt.value for dt in DataType],
        logic=[logic.value for logic in ConditionLogic],
        action_types=[action.value for action in ActionType],
        transforms=transforms,
        rule_schema=Rule.model_json_schema(),
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Print the processing-rule catalog for rule editors.")
    parser.add_argument("--indent", type=int, default=2, help="JSON indentation (default: 2).")
    args = parser.parse_args(argv)

    print(json.dumps(build_catalog().model_dump(mode="json"), indent=args.indent, sort_keys=True))


if __name__ == "__main__":
    main()
