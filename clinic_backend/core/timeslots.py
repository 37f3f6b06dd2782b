"""Wall-clock primitives for schedule arithmetic.

Times of day are minutes since midnight and intervals are half-open
``[start, end)``. Everything is clinic-local time; no timezone conversion
happens anywhere in the scheduling core.
"""

from dataclasses import dataclass
from datetime import date, time

from clinic_backend.core.errors import ValidationError

MINUTES_PER_DAY = 24 * 60


def day_of_week(value: date) -> int:
    """Return 0 for Sunday through 6 for Saturday."""
    return (value.weekday() + 1) % 7


def to_minutes(value: time | str) -> int:
    if isinstance(value, str):
        value = parse_time(value)
    return value.hour * 60 + value.minute


def parse_time(value: str) -> time:
    try:
        hours, minutes = value.strip().split(':')
        return time(int(hours), int(minutes))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f'Invalid time of day: {value!r}. Expected HH:MM.') from exc


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValidationError(f'{minutes} minutes is outside a single day.')
    # Midnight as an end bound is stored as 00:00, see Interval.from_times.
    minutes %= MINUTES_PER_DAY
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    # 24:00 is a valid interval end.
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


@dataclass(frozen=True, order=True)
class Interval:
    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValidationError(
                f'Invalid interval {format_minutes(self.start)}-{format_minutes(self.end)}: '
                'start must be before end within a single day.'
            )

    @classmethod
    def from_times(cls, start: time, end: time) -> 'Interval':
        end_minutes = to_minutes(end)
        # A stored 00:00 end means the entry runs to midnight.
        if end_minutes == 0 and to_minutes(start) > 0:
            end_minutes = MINUTES_PER_DAY
        return cls(to_minutes(start), end_minutes)

    @property
    def duration(self) -> int:
        return self.end - self.start

    def contains(self, other: 'Interval') -> bool:
        return self.start <= other.start and other.end <= self.end

    def as_dict(self) -> dict[str, str]:
        return {'start': format_minutes(self.start), 'end': format_minutes(self.end)}


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def merge_intervals(intervals: list[Interval]) -> list[Interval]:
    """Union of ``intervals``: sorted, with overlapping or touching spans joined."""
    merged: list[Interval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = Interval(last.start, interval.end)
        else:
            merged.append(interval)
    return merged


def subtract_intervals(free: Interval, busy: list[Interval]) -> list[Interval]:
    """Return the parts of ``free`` not covered by any of ``busy``."""
    remaining: list[Interval] = []
    cursor = free.start

    for blocker in merge_intervals([interval for interval in busy if overlaps(interval, free)]):
        if blocker.start > cursor:
            remaining.append(Interval(cursor, blocker.start))
        cursor = max(cursor, blocker.end)
        if cursor >= free.end:
            break

    if cursor < free.end:
        remaining.append(Interval(cursor, free.end))

    return remaining


def enumerate_slots(interval: Interval, duration: int, step: int | None = None) -> list[Interval]:
    if duration <= 0:
        raise ValidationError('Slot duration must be a positive number of minutes.')
    step = step or duration
    if step <= 0:
        raise ValidationError('Slot step must be a positive number of minutes.')

    slots: list[Interval] = []
    current = interval.start
    while current + duration <= interval.end:
        slots.append(Interval(current, current + duration))
        current += step
    return slots
