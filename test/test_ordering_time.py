from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from chalicelib.utils import exceptions, ordering_time

TZ = ZoneInfo('Asia/Ho_Chi_Minh')


@pytest.fixture(autouse=True)
def ordering_calendar(monkeypatch):
    monkeypatch.setenv('ORDERING_TIMEZONE', 'Asia/Ho_Chi_Minh')
    monkeypatch.setenv('ORDER_CUTOFF_HOUR', '22')


def test_parse_order_date():
    assert ordering_time.parse_order_date('2030-01-10') == date(2030, 1, 10)
    assert ordering_time.parse_order_date('2030-01-10T08:00:00') == date(2030, 1, 10)
    assert ordering_time.parse_order_date(date(2030, 1, 10)) == date(2030, 1, 10)
    assert ordering_time.parse_order_date(datetime(2030, 1, 10, 8)) == date(2030, 1, 10)
    for invalid in ('', None, '2030-13-01', 20300110, '2030-01-10garbage', 'tomorrow'):
        with pytest.raises(exceptions.ValidationException):
            ordering_time.parse_order_date(invalid)


def test_cutoff_is_previous_evening():
    assert ordering_time.get_order_cutoff_time('2030-01-10') == datetime(2030, 1, 9, 22, 0, tzinfo=TZ)


def test_is_past_ordering_cutoff():
    assert ordering_time.is_past_ordering_cutoff('2030-01-10', now=datetime(2030, 1, 9, 21, 59, tzinfo=TZ)) is False
    assert ordering_time.is_past_ordering_cutoff('2030-01-10', now=datetime(2030, 1, 9, 22, 0, tzinfo=TZ)) is True
    assert ordering_time.is_past_ordering_cutoff('2030-01-10', now=datetime(2030, 1, 10, 8, 0, tzinfo=TZ)) is True


def test_cutoff_uses_ordering_timezone():
    # 21:30 in Ho Chi Minh City is 14:30 UTC
    now = datetime(2030, 1, 9, 14, 30, tzinfo=ZoneInfo('UTC'))
    assert ordering_time.is_past_ordering_cutoff('2030-01-10', now=now) is False
    now = datetime(2030, 1, 9, 15, 0, tzinfo=ZoneInfo('UTC'))
    assert ordering_time.is_past_ordering_cutoff('2030-01-10', now=now) is True


def test_cutoff_hour_is_configurable(monkeypatch):
    monkeypatch.setenv('ORDER_CUTOFF_HOUR', '20')
    assert ordering_time.is_past_ordering_cutoff('2030-01-10', now=datetime(2030, 1, 9, 21, 0, tzinfo=TZ)) is True


def test_ordering_countdown():
    countdown = ordering_time.get_ordering_countdown('2030-01-10', now=datetime(2030, 1, 9, 20, 15, tzinfo=TZ))
    assert countdown == {
        'hours': 1,
        'minutes': 45,
        'is_past_cutoff': False,
        'cutoff': '2030-01-09T22:00:00+07:00'
    }

    countdown = ordering_time.get_ordering_countdown('2030-01-10', now=datetime(2030, 1, 9, 23, 0, tzinfo=TZ))
    assert countdown['is_past_cutoff'] is True
    assert (countdown['hours'], countdown['minutes']) == (0, 0)


def test_next_orderable_date():
    assert ordering_time.next_orderable_date(now=datetime(2030, 1, 9, 10, 0, tzinfo=TZ)) == date(2030, 1, 10)
    assert ordering_time.next_orderable_date(now=datetime(2030, 1, 9, 22, 30, tzinfo=TZ)) == date(2030, 1, 11)
