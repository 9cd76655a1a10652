from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest as pytest

from chalicelib.utils import data, exceptions
from utils.request_utils import build_request


@pytest.mark.parametrize('value, expected', [
    ('2024-03-15T10:30:00+00:00', '2024-03-15T10:30:00+00:00'),
    ('2024-03-15T10:30:00Z', '2024-03-15T10:30:00+00:00'),
    ('2024-03-15T10:30:00', '2024-03-15T10:30:00+00:00'),
    ('2024-03-15T16:00:00+05:30', '2024-03-15T10:30:00+00:00'),
    (1710498600, '2024-03-15T10:30:00+00:00'),
    (1710498600000, '2024-03-15T10:30:00+00:00'),
    (Decimal('1710498600'), '2024-03-15T10:30:00+00:00'),
    ({'_seconds': 1710498600, '_nanoseconds': 0}, '2024-03-15T10:30:00+00:00'),
    ({'seconds': 1710498600, 'nanoseconds': 500000000}, '2024-03-15T10:30:00+00:00'),
    (datetime(2024, 3, 15, 10, 30), '2024-03-15T10:30:00+00:00'),
    (datetime(2024, 3, 15, 12, 30, tzinfo=timezone(timedelta(hours=2))), '2024-03-15T10:30:00+00:00'),
])
def test_normalize_timestamp(value, expected):
    assert data.normalize_timestamp(value) == expected


@pytest.mark.parametrize('value', [
    None, True, '', 'yesterday', {'seconds': 'abc'}, {}, [1710498600],
    10 ** 20, -10 ** 20, 10 ** 400, float('inf'), float('nan'), Decimal('NaN'),
    {'_seconds': 10 ** 20, '_nanoseconds': 0}, {'seconds': float('inf')},
])
def test_normalize_timestamp_unparseable(value):
    assert data.parse_timestamp(value) is None
    assert data.normalize_timestamp(value) is None


@pytest.mark.parametrize('value, expected', [
    (10, Decimal('10.00')),
    (12.345, Decimal('12.34')),
    (Decimal('0.5'), Decimal('0.50')),
    ('99.999', Decimal('100.00')),
    ('abc', None),
    ('NaN', None),
    ('-Infinity', None),
    (float('nan'), None),
    (Decimal('Infinity'), None),
    (None, None),
    (False, None),
])
def test_to_decimal(value, expected):
    assert data.to_decimal(value) == expected


def test_is_number():
    assert data.is_number(1)
    assert data.is_number(1.5)
    assert data.is_number(Decimal('2'))
    assert not data.is_number(True)
    assert not data.is_number('1')
    assert not data.is_number(None)


def test_first_present():
    record = {'order_total': None, 'orderTotal': '', 'total': 0}
    assert data.first_present(record, ('order_total', 'orderTotal', 'total')) == 0
    assert data.first_present(record, ('order_total', 'orderTotal'), default='missing') == 'missing'


def test_parse_raw_body():
    request = build_request(json_body={'price': 12.5, 'name': 'Lassi', 'description': None})
    assert data.parse_raw_body(request) == {'price': Decimal('12.5'), 'name': 'Lassi'}
    assert data.parse_raw_body(build_request()) == {}

    with pytest.raises(exceptions.ValidationException):
        data.parse_raw_body(build_request(json_body=['not', 'an', 'object']))


def test_parse_raw_body_delete_empty_strategy():
    request = build_request(json_body={'name': 'Lassi', 'description': '', '_values_from_ui_strategy': 'delete_empty'})
    assert data.parse_raw_body(request) == {'name': 'Lassi'}
