import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest

from common.rules_engine.models import Action, Condition, Rule


@pytest.fixture
def make_rule():
    def _make(
        rule_id: str = "RULE_001",
        *,
        conditions=(),
        actions=(),
        logic: str = "ANY",
        rule_order: int = 0,
        active: bool = True,
        name: str = "",
    ) -> Rule:
        return Rule(
            id=rule_id,
            name=name or rule_id,
            active=active,
            rule_order=rule_order,
            logic=logic,
            conditions=[c if isinstance(c, Condition) else Condition(**c) for c in conditions],
            actions=[a if isinstance(a, Action) else Action(**a) for a in actions],
        )

    return _make
