from __future__ import annotations

import datetime as dt
import threading
from typing import Callable, List, Optional

import structlog

from common.store.models import ExchangeRate
from common.store.schema import CURRENCIES
from common.store.store import RelationalStore

from .client import RateFetchResult, fetch_rates
from .config import RatesConfig

logger = structlog.get_logger(__name__)

SOURCE = "live"


def refresh_rates(
    store: RelationalStore,
    config: RatesConfig,
    base_code: str,
    *,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
    today: Optional[dt.date] = None,
    source: str = SOURCE,
) -> tuple[RateFetchResult, List[ExchangeRate]]:
    """Fetch rates and swap them into the store; a failed or cancelled fetch changes nothing."""
    result = fetch_rates(config, base_code, cancel=cancel, sleep=sleep)
    if not result.ok:
        return result, []

    ids_by_code = {c.code: c.id for c in store.records(CURRENCIES)}
    base_id = ids_by_code.get(result.base_code)
    if base_id is None:
        logger.warning("rate_refresh_unknown_base", base_code=result.base_code)
        return result, []

    as_of = result.date or today or dt.date.today()
    rows = [
        {"from_currency_id": base_id, "to_currency_id": ids_by_code[code], "rate": rate, "date": as_of}
        for code, rate in sorted(result.rates.items())
        if code in ids_by_code and code != result.base_code
    ]
    stored = store.replace_exchange_rates(rows, source=source)
    logger.info("rates_refreshed", base_code=result.base_code, stored=len(stored), fetched=len(result.rates))
    return result, stored
