"""
Quiz Assessment Platform
Shared helpers: logging setup, rounding and time conversion
"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float]


def setup_logging(settings=None) -> None:
    """Configure root logging once from LOG_LEVEL and LOG_FORMAT"""
    if settings is None:
        from ...config import get_settings
        settings = get_settings()

    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=settings.LOG_FORMAT,
        stream=sys.stdout,
        force=True
    )

    # Keep SQL echo out of the application log unless asked for
    if not settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def round_half_up(value: Optional[Number], digits: int = 0) -> Union[int, float]:
    """Round half away from zero (Python's round() is banker's rounding).

    Returns an int when digits == 0, otherwise a float.
    """
    if value is None:
        return 0
    quantum = Decimal("1") if digits == 0 else Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def round_percentage(value: Optional[Number]) -> int:
    """Integer percentage as presented to users"""
    return round_half_up(value, 0)


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_ms_to_datetime(epoch_ms: Number) -> datetime:
    """Convert client epoch milliseconds to a naive UTC datetime.

    Raises ValueError, OverflowError or OSError for values the platform
    cannot represent.
    """
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).replace(tzinfo=None)


def elapsed_seconds(started_at: Optional[datetime], completed_at: Optional[datetime]) -> int:
    if started_at is None or completed_at is None:
        return 0
    return int((completed_at - started_at).total_seconds())


__all__ = [
    "setup_logging",
    "round_half_up",
    "round_percentage",
    "utcnow",
    "epoch_ms_to_datetime",
    "elapsed_seconds",
]
