import calendar
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ledger_api.core.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# NUMERIC(12,2)
MAX_AMOUNT = Decimal("9999999999.99")

PERIODS = ("weekly", "monthly", "yearly")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_money(value: Any) -> Decimal:
    """Normalize an aggregate coming back from the store; NULL counts as zero."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = Decimal(repr(value))
    return to_money(Decimal(value))


def parse_amount(value: Any, field_name: str = "amount") -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field_name} must be a valid number")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(repr(value))
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValueError(f"{field_name} must be a valid number")
        try:
            parsed = Decimal(raw)
        except InvalidOperation:
            raise ValueError(f"{field_name} must be a valid number")
    else:
        raise ValueError(f"{field_name} must be a valid number")
    if not parsed.is_finite():
        raise ValueError(f"{field_name} must be a finite number")
    # quantize raises InvalidOperation past the context precision.
    if abs(parsed) > MAX_AMOUNT + CENT:
        raise ValueError(f"{field_name} is out of range")
    money = to_money(parsed)
    if abs(money) > MAX_AMOUNT:
        raise ValueError(f"{field_name} is out of range")
    return money


def parse_calendar_date(value: Any, field_name: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string in YYYY-MM-DD format")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"{field_name} must be a string in YYYY-MM-DD format")


def parse_timestamp(value: Any, field_name: str = "created_at") -> datetime:
    """Accept an ISO 8601 datetime or a plain YYYY-MM-DD date, normalized to UTC seconds."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        raw = value.strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            raise ValueError(f"{field_name} must be an ISO 8601 date or datetime")
    else:
        raise ValueError(f"{field_name} must be an ISO 8601 date or datetime")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        try:
            dt = dt.astimezone(timezone.utc)
        except OverflowError:
            raise ValueError(f"{field_name} is out of range")
    return dt.replace(microsecond=0)


def parse_date_utc(date_str: str, field_name: str, end_of_day: bool = False) -> datetime:
    try:
        d = datetime.strptime(date_str, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be in YYYY-MM-DD format")
    dt = datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    return dt + (timedelta(days=1) - timedelta(microseconds=1) if end_of_day else timedelta(0))


def clamp_day(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def shift_months(dt: datetime, months: int) -> datetime:
    index = dt.year * 12 + (dt.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return dt.replace(year=year, month=month, day=clamp_day(year, month, dt.day))


def month_start(dt: datetime) -> datetime:
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def period_start(period: str, now: datetime) -> datetime:
    if period == "weekly":
        return now - timedelta(days=7)
    if period == "monthly":
        return shift_months(now, -1)
    if period == "yearly":
        return shift_months(now, -12)
    raise ValidationError("period must be one of weekly, monthly, yearly")


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return to_money(part / whole * 100)
