from __future__ import annotations

import datetime as dt
import json
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import structlog

from .config import RatesConfig

logger = structlog.get_logger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class NetworkError(RuntimeError):
    def __init__(self, message: str, *, status: int = 0, attempts: int = 0):
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class RateFetchStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RateFetchResult:
    status: RateFetchStatus
    base_code: str
    # Currency code -> units per one unit of `base_code`.
    rates: Dict[str, Decimal] = field(default_factory=dict)
    date: Optional[dt.date] = None
    attempts: int = 0
    error: Optional[NetworkError] = None

    @property
    def ok(self) -> bool:
        return self.status == RateFetchStatus.OK


def fetch_rates(
    config: RatesConfig,
    base_code: str,
    *,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> RateFetchResult:
    """
    Fetch the latest rates for `base_code`.

    Connection errors and 429/5xx responses are retried with a doubling backoff up to
    `config.max_attempts` attempts. Setting `cancel` before an attempt or during a backoff stops
    the fetch. Failures come back as a `failed` result carrying a `NetworkError`; nothing raises.
    """
    base = base_code.strip().lower()
    url = f"{config.api_url.rstrip('/')}/{base}.json"
    backoff = config.backoff_seconds
    attempts = 0
    log = logger.bind(base_code=base.upper(), url=url)

    while True:
        if cancel is not None and cancel.is_set():
            log.info("rate_fetch_cancelled", attempts=attempts)
            return RateFetchResult(status=RateFetchStatus.CANCELLED, base_code=base.upper(), attempts=attempts)

        attempts += 1
        req = Request(url, method="GET")
        req.add_header("Accept", "application/json")
        retryable = False
        try:
            with urlopen(req, timeout=config.timeout_seconds) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
            rates, as_of = _parse_payload(payload, base)
            log.info("rates_fetched", attempts=attempts, count=len(rates))
            return RateFetchResult(
                status=RateFetchStatus.OK,
                base_code=base.upper(),
                rates=rates,
                date=as_of,
                attempts=attempts,
            )
        except HTTPError as exc:
            error = NetworkError(f"Rates HTTP {exc.code}: {exc.reason}", status=exc.code, attempts=attempts)
            retryable = exc.code in RETRYABLE_STATUSES
        except URLError as exc:
            error = NetworkError(f"Rates request failed: {exc.reason}", attempts=attempts)
            retryable = True
        except (OSError, ValueError) as exc:
            error = NetworkError(f"Rates response unusable: {exc}", attempts=attempts)
            retryable = isinstance(exc, OSError)

        if not retryable or attempts >= config.max_attempts:
            log.warning("rate_fetch_failed", attempts=attempts, error=str(error))
            return RateFetchResult(
                status=RateFetchStatus.FAILED,
                base_code=base.upper(),
                attempts=attempts,
                error=error,
            )

        log.info("rate_fetch_retrying", attempts=attempts, delay=backoff, error=str(error))
        if _wait(backoff, cancel, sleep):
            log.info("rate_fetch_cancelled", attempts=attempts)
            return RateFetchResult(status=RateFetchStatus.CANCELLED, base_code=base.upper(), attempts=attempts)
        backoff *= 2


def _wait(delay: float, cancel: Optional[threading.Event], sleep: Optional[Callable[[float], None]]) -> bool:
    """Back off for `delay` seconds; True when cancellation was requested meanwhile."""
    if sleep is None and cancel is not None:
        return cancel.wait(delay)
    (sleep or time.sleep)(delay)
    return cancel is not None and cancel.is_set()


def _parse_payload(payload: Any, base: str) -> tuple[Dict[str, Decimal], Optional[dt.date]]:
    if not isinstance(payload, dict) or not isinstance(payload.get(base), dict):
        raise ValueError(f"payload has no '{base}' rate table")

    rates: Dict[str, Decimal] = {}
    for code, raw in payload[base].items():
        if isinstance(raw, bool):
            continue
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            continue
        if value.is_finite() and value > 0:
            rates[str(code).upper()] = value

    as_of = None
    if isinstance(payload.get("date"), str):
        try:
            as_of = dt.date.fromisoformat(payload["date"][:10])
        except ValueError:
            as_of = None
    return rates, as_of
