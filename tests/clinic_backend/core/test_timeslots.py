from datetime import date, time

import pytest

from clinic_backend.core.errors import ValidationError
from clinic_backend.core.timeslots import (
    Interval,
    day_of_week,
    enumerate_slots,
    format_minutes,
    merge_intervals,
    minutes_to_time,
    overlaps,
    parse_time,
    subtract_intervals,
    to_minutes,
)


def hm(value: str) -> int:
    return to_minutes(value)


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        (date(2026, 1, 4), 0),  # Sunday
        (date(2026, 1, 5), 1),
        (date(2026, 1, 10), 6),  # Saturday
    ],
)
def test_day_of_week_counts_from_sunday(value: date, expected: int) -> None:
    assert day_of_week(value) == expected


def test_time_conversions() -> None:
    assert to_minutes(time(9, 30)) == 570
    assert to_minutes('13:05') == 785
    assert minutes_to_time(570) == time(9, 30)
    assert minutes_to_time(24 * 60) == time(0, 0)
    assert format_minutes(24 * 60) == '24:00'


@pytest.mark.parametrize('value', ['9', '25:00', 'ab:cd', ''])
def test_parse_time_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValidationError):
        parse_time(value)


@pytest.mark.parametrize(('start', 'end'), [(600, 600), (700, 600), (-10, 30), (1400, 1500)])
def test_interval_rejects_invalid_bounds(start: int, end: int) -> None:
    with pytest.raises(ValidationError):
        Interval(start, end)


def test_interval_from_times_treats_midnight_end_as_end_of_day() -> None:
    interval = Interval.from_times(time(20, 0), time(0, 0))

    assert interval == Interval(1200, 1440)


def test_overlap_is_half_open() -> None:
    assert overlaps(Interval(480, 540), Interval(530, 600))
    assert not overlaps(Interval(480, 540), Interval(540, 600))
    assert overlaps(Interval(480, 720), Interval(540, 600))


def test_merge_intervals_joins_overlapping_and_touching_spans() -> None:
    merged = merge_intervals([Interval(hm('13:00'), hm('17:00')), Interval(hm('08:00'), hm('10:00')),
                              Interval(hm('09:00'), hm('12:00')), Interval(hm('12:00'), hm('12:30'))])

    assert merged == [Interval(hm('08:00'), hm('12:30')), Interval(hm('13:00'), hm('17:00'))]


def test_subtract_intervals_leaves_gaps_between_busy_spans() -> None:
    free = Interval(hm('08:00'), hm('12:00'))
    busy = [Interval(hm('09:00'), hm('10:00')), Interval(hm('11:30'), hm('13:00')), Interval(hm('06:00'), hm('07:00'))]

    assert subtract_intervals(free, busy) == [
        Interval(hm('08:00'), hm('09:00')),
        Interval(hm('10:00'), hm('11:30')),
    ]


def test_subtract_intervals_returns_nothing_when_fully_busy() -> None:
    free = Interval(hm('08:00'), hm('12:00'))

    assert subtract_intervals(free, [Interval(hm('07:00'), hm('12:30'))]) == []


def test_enumerate_slots_only_returns_slots_that_fit() -> None:
    slots = enumerate_slots(Interval(hm('08:00'), hm('12:00')), 90)

    assert [slot.as_dict()['start'] for slot in slots] == ['08:00', '09:30']
    assert all(slot.duration == 90 for slot in slots)


def test_enumerate_slots_with_duration_longer_than_interval_is_empty() -> None:
    assert enumerate_slots(Interval(hm('08:00'), hm('08:45')), 60) == []


def test_enumerate_slots_rejects_non_positive_duration() -> None:
    with pytest.raises(ValidationError):
        enumerate_slots(Interval(hm('08:00'), hm('09:00')), 0)
