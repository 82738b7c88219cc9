from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol

import structlog

from common.store.store import RelationalStore, RelationshipIssue

logger = structlog.get_logger(__name__)


class TableSnapshotStore(Protocol):
    def save_table(self, *, name: str, rows: list[dict[str, Any]]) -> None:
        ...

    def load_tables(self) -> dict[str, list[dict[str, Any]]]:
        ...


@dataclass(frozen=True)
class LocalTableSnapshotStore:
    """One `<table>.json` file per table under `root_dir`."""

    root_dir: Path

    def save_table(self, *, name: str, rows: list[dict[str, Any]]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        out_path = self.root_dir / f"{name}.json"
        out_path.write_text(json.dumps(rows, indent=2))

    def load_tables(self) -> dict[str, list[dict[str, Any]]]:
        if not self.root_dir.is_dir():
            return {}
        tables: dict[str, list[dict[str, Any]]] = {}
        for path in sorted(self.root_dir.glob("*.json")):
            payload = json.loads(path.read_text())
            if not isinstance(payload, list):
                raise ValueError(f"{path} must contain a JSON list of rows")
            tables[path.stem] = payload
        return tables


def save_store(store: RelationalStore, snapshots: TableSnapshotStore) -> None:
    exported: Mapping[str, list[dict[str, Any]]] = store.export_all()
    for name, rows in exported.items():
        snapshots.save_table(name=name, rows=rows)
    logger.info("tables_saved", tables=len(exported))


def load_store(store: RelationalStore, snapshots: TableSnapshotStore) -> list[RelationshipIssue]:
    return store.load_tables(snapshots.load_tables())
