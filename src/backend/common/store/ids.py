from __future__ import annotations

import re
from typing import Dict, Iterable, Optional


def format_id(prefix: str, number: int) -> str:
    return f"{prefix}_{number:03d}"


def id_suffix(prefix: str, record_id: str) -> Optional[int]:
    """Numeric suffix of `record_id` for `prefix` (accepts `PREFIX_12` and legacy `PREFIX12`)."""
    match = re.fullmatch(rf"{re.escape(prefix)}_?(\d+)", record_id or "")
    if not match:
        return None
    return int(match.group(1))


class IdGenerator:
    """Monotonic per-prefix counters seeded from the highest suffix already in use.

    Counters never move backwards within a session, so deleted ids are not reissued.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}

    def reset(self) -> None:
        self._counters.clear()

    def next_id(self, prefix: str, existing_ids: Iterable[str]) -> str:
        if prefix not in self._counters:
            self._counters[prefix] = max(
                (n for n in (id_suffix(prefix, rid) for rid in existing_ids) if n is not None),
                default=0,
            )
        self._counters[prefix] += 1
        return format_id(prefix, self._counters[prefix])
