from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from common.settings import env_int


load_dotenv()

DEFAULT_API_URL = "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies"


@dataclass(frozen=True)
class RatesConfig:
    api_url: str = DEFAULT_API_URL
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    timeout_seconds: int = 30


def get_rates_config() -> RatesConfig:
    """
    Load exchange-rate connector configuration from environment variables.

    Reads: RATES_API_URL, RATES_MAX_ATTEMPTS, RATES_BACKOFF_SECONDS, RATES_TIMEOUT_SECONDS
    """
    defaults = RatesConfig()
    return RatesConfig(
        api_url=os.getenv("RATES_API_URL", "").strip().rstrip("/") or defaults.api_url,
        max_attempts=env_int("RATES_MAX_ATTEMPTS", defaults.max_attempts, minimum=1),
        backoff_seconds=_env_float("RATES_BACKOFF_SECONDS", defaults.backoff_seconds),
        timeout_seconds=env_int("RATES_TIMEOUT_SECONDS", defaults.timeout_seconds, minimum=1),
    )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value
