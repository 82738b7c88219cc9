from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel

from common.store.errors import (
    DuplicateKeyError,
    InvalidReferenceError,
    RecordNotFoundError,
    ReferentialIntegrityError,
    StoreError,
    ValidationError,
)
from common.store.schema import BANK_CONFIGURATIONS
from common.store.store import RelationalStore
from pipelines.importer import ImportPipeline
from pipelines.parsing import read_rows


router = APIRouter(prefix="/ledger", tags=["ledger"])


class ImportPreviewRequest(BaseModel):
    bank_config_id: str
    csv_text: str
    source_name: str = ""


def get_store(request: Request) -> RelationalStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Ledger store is not configured.")
    return store


def _status_for(exc: StoreError) -> int:
    if isinstance(exc, RecordNotFoundError):
        return 404
    if isinstance(exc, (DuplicateKeyError, ReferentialIntegrityError)):
        return 409
    if isinstance(exc, (ValidationError, InvalidReferenceError)):
        return 422
    return 400


def _http_error(exc: StoreError) -> HTTPException:
    detail: dict[str, Any] = {"error": type(exc).__name__, "message": exc.message}
    if exc.table:
        detail["table"] = exc.table
    if exc.field:
        detail["field"] = exc.field
    if exc.record_id:
        detail["record_id"] = exc.record_id
    if isinstance(exc, ReferentialIntegrityError):
        detail["dependents"] = [
            {"table": d.table, "field": d.field, "record_id": d.record_id} for d in exc.dependents
        ]
    return HTTPException(status_code=_status_for(exc), detail=detail)


def _require_table(store: RelationalStore, table: str) -> None:
    if not store.schema.has_table(table):
        raise HTTPException(status_code=404, detail=f"Unknown table '{table}'.")


@router.post("/imports/preview")
def preview_import(payload: ImportPreviewRequest, store: RelationalStore = Depends(get_store)):
    try:
        bank = store.require(BANK_CONFIGURATIONS, payload.bank_config_id)
    except StoreError as exc:
        raise _http_error(exc) from exc
    rows = read_rows(payload.csv_text, bank.settings)
    result = ImportPipeline(store).run(rows, bank, source_name=payload.source_name)
    return result.model_dump(mode="json")


@router.get("/{table}")
def list_records(table: str, active_only: bool = False, store: RelationalStore = Depends(get_store)):
    _require_table(store, table)
    records = store.active(table) if active_only else store.records(table)
    return [r.model_dump(mode="json") for r in records]


@router.get("/{table}/{record_id}")
def get_record(table: str, record_id: str, store: RelationalStore = Depends(get_store)):
    _require_table(store, table)
    try:
        return store.require(table, record_id).model_dump(mode="json")
    except StoreError as exc:
        raise _http_error(exc) from exc


@router.post("/{table}", status_code=201)
def create_record(
    table: str,
    data: dict[str, Any] = Body(...),
    store: RelationalStore = Depends(get_store),
):
    _require_table(store, table)
    try:
        return store.insert(table, data).model_dump(mode="json")
    except StoreError as exc:
        raise _http_error(exc) from exc


@router.patch("/{table}/{record_id}")
def update_record(
    table: str,
    record_id: str,
    patch: dict[str, Any] = Body(...),
    store: RelationalStore = Depends(get_store),
):
    _require_table(store, table)
    try:
        return store.update(table, record_id, patch).model_dump(mode="json")
    except StoreError as exc:
        raise _http_error(exc) from exc


@router.delete("/{table}/{record_id}")
def delete_record(table: str, record_id: str, store: RelationalStore = Depends(get_store)):
    _require_table(store, table)
    try:
        return store.delete(table, record_id).model_dump(mode="json")
    except StoreError as exc:
        raise _http_error(exc) from exc
