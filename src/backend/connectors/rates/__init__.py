"""Exchange-rate connector (network lives here; rate lookup lives in common/store/rates.py)."""

from .client import NetworkError, RateFetchResult, RateFetchStatus, fetch_rates
from .config import RatesConfig, get_rates_config
from .refresh import refresh_rates

__all__ = [
    "NetworkError",
    "RateFetchResult",
    "RateFetchStatus",
    "RatesConfig",
    "fetch_rates",
    "get_rates_config",
    "refresh_rates",
]
