from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppSettings:
    log_level: str = "INFO"
    log_json: bool = True
    import_batch_size: int = 100
    duplicate_amount_tolerance: Decimal = Decimal("0.01")
    duplicate_prefix_length: int = 10
    snapshot_dir: Path = Path("data")


def get_settings() -> AppSettings:
    """
    Load application settings from the environment (and a local `.env`, if present).

    Reads: LOG_LEVEL, LOG_JSON, IMPORT_BATCH_SIZE, DUPLICATE_AMOUNT_TOLERANCE,
    DUPLICATE_PREFIX_LENGTH, SNAPSHOT_DIR.
    """
    load_dotenv()
    defaults = AppSettings()
    return AppSettings(
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).strip().upper() or defaults.log_level,
        log_json=env_flag("LOG_JSON", defaults.log_json),
        import_batch_size=env_int("IMPORT_BATCH_SIZE", defaults.import_batch_size, minimum=1),
        duplicate_amount_tolerance=env_decimal("DUPLICATE_AMOUNT_TOLERANCE", defaults.duplicate_amount_tolerance),
        duplicate_prefix_length=env_int("DUPLICATE_PREFIX_LENGTH", defaults.duplicate_prefix_length, minimum=1),
        snapshot_dir=Path(os.getenv("SNAPSHOT_DIR", "").strip() or defaults.snapshot_dir),
    )


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if not value.is_finite() or value < 0:
        raise ValueError(f"{name} must be a non-negative number, got {raw!r}")
    return value
