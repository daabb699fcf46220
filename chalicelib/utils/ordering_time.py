"""
Ordering calendar helpers.

All "local" values are in the canteen time zone (ORDERING_TIMEZONE).
Ordering for a collection date closes at ORDER_CUTOFF_HOUR o'clock on the previous day.
"""
import os
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional, Union
from zoneinfo import ZoneInfo

from chalicelib.utils.exceptions import ValidationException

DEFAULT_ORDERING_TIMEZONE = 'Asia/Ho_Chi_Minh'
DEFAULT_ORDER_CUTOFF_HOUR = 22


def ordering_timezone() -> ZoneInfo:
    return ZoneInfo(os.environ.get('ORDERING_TIMEZONE', DEFAULT_ORDERING_TIMEZONE))


def order_cutoff_hour() -> int:
    return int(os.environ.get('ORDER_CUTOFF_HOUR', DEFAULT_ORDER_CUTOFF_HOUR))


def local_now() -> datetime:
    return datetime.now(ordering_timezone())


def local_today() -> date:
    return local_now().date()


def parse_order_date(order_date: Union[str, date, None]) -> date:
    if isinstance(order_date, datetime):
        return order_date.date()
    if isinstance(order_date, date):
        return order_date
    if not isinstance(order_date, str) or not order_date:
        raise ValidationException('order_date is required (YYYY-MM-DD)')
    try:
        if len(order_date) == 10:
            return date.fromisoformat(order_date)
        # full ISO timestamps are accepted too, only their date part is used
        return datetime.fromisoformat(order_date).date()
    except ValueError:
        raise ValidationException(f'Invalid order_date={order_date}, expected YYYY-MM-DD')


def get_order_cutoff_time(order_date: Union[str, date]) -> datetime:
    day_before = parse_order_date(order_date) - timedelta(days=1)
    return datetime.combine(day_before, time(hour=order_cutoff_hour()), tzinfo=ordering_timezone())


def is_past_ordering_cutoff(order_date: Union[str, date], now: Optional[datetime] = None) -> bool:
    now = now or local_now()
    return now >= get_order_cutoff_time(order_date)


def get_ordering_countdown(order_date: Union[str, date], now: Optional[datetime] = None) -> Dict:
    now = now or local_now()
    cutoff = get_order_cutoff_time(order_date)
    if now >= cutoff:
        return {'hours': 0, 'minutes': 0, 'is_past_cutoff': True, 'cutoff': cutoff.isoformat()}
    seconds_left = int((cutoff - now).total_seconds())
    return {
        'hours': seconds_left // 3600,
        'minutes': (seconds_left % 3600) // 60,
        'is_past_cutoff': False,
        'cutoff': cutoff.isoformat()
    }


def next_orderable_date(now: Optional[datetime] = None) -> date:
    now = now or local_now()
    candidate = now.date() + timedelta(days=1)
    while is_past_ordering_cutoff(candidate, now):
        candidate += timedelta(days=1)
    return candidate
