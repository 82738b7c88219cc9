from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from common.store.store import RelationalStore

from .ledger import router as ledger_router


def create_app(store: Optional[RelationalStore] = None) -> FastAPI:
    app = FastAPI(title="Ledger")
    app.state.store = store if store is not None else RelationalStore.with_defaults()
    app.include_router(ledger_router)
    return app
