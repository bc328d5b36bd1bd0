"""Environment-driven settings for billbook."""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from .errors import ConfigError

# Can be overridden via BILLBOOK_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_TAX_RATE = "0.15"
DEFAULT_LOCK_TIMEOUT = "5"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    data_dir: Path
    tax_rate: Decimal
    lock_timeout: float
    log_level: str


def _read_decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, default).strip()
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(name, raw, "not a decimal number")
    if not value.is_finite():
        raise ConfigError(name, raw, "not a finite number")
    return value


def load_settings() -> Settings:
    """
    Read settings from the environment.

    Values are read on every call so tests can monkeypatch the environment.

    Raises:
        ConfigError: If a variable is set to an unusable value.
    """
    data_dir = Path(os.environ.get("BILLBOOK_DATA_DIR", _default_data_dir)).expanduser()

    tax_rate = _read_decimal("BILLBOOK_TAX_RATE", DEFAULT_TAX_RATE)
    if tax_rate < 0 or tax_rate > 1:
        raise ConfigError("BILLBOOK_TAX_RATE", str(tax_rate), "must be between 0 and 1")

    lock_timeout = _read_decimal("BILLBOOK_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)
    if lock_timeout <= 0:
        raise ConfigError("BILLBOOK_LOCK_TIMEOUT", str(lock_timeout), "must be positive")

    log_level = os.environ.get("BILLBOOK_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError("BILLBOOK_LOG_LEVEL", log_level, "unknown logging level")

    return Settings(
        data_dir=data_dir,
        tax_rate=tax_rate,
        lock_timeout=float(lock_timeout),
        log_level=log_level,
    )


def configure_logging(level: str | None = None) -> None:
    """Set up root logging for the CLI and server."""
    logging.basicConfig(
        level=level or DEFAULT_LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
