from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

PERIODS = ("day", "week", "month", "year")


def normalize_address(address: Optional[str]) -> str:
    """Lower-case and strip an address so it can be used as a store key"""
    return (address or "").strip().lower()


def period_start(period: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Start of a reporting window ending now.
    Unknown periods mean "since the beginning"; None means no window at all.
    """
    if period is None:
        return None
    now = now or datetime.utcnow()
    if period == "day":
        return now - timedelta(days=1)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return _shift_months(now, -1)
    if period == "year":
        return _shift_months(now, -12)
    return datetime(1970, 1, 1)


def _shift_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    # clamp to the last valid day of the target month
    day = value.day
    while True:
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def format_units(raw: str, decimals: int) -> str:
    """Render a raw integer amount using the token decimals without float rounding"""
    value = Decimal(int(raw)) / (Decimal(10) ** int(decimals))
    return format(value.normalize(), "f") if value else "0"


def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """Write-time stamp that never goes backwards relative to the row being replaced"""
    now = datetime.utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now
