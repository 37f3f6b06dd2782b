import threading
from datetime import date, time

import pytest

from clinic_backend.core.errors import ConflictError, NotFoundError, ValidationError
from clinic_backend.scheduling import schedules
from clinic_backend.scheduling.availability import compute_availability

MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


def test_new_entry_is_visible_to_the_next_availability_read(db, clinic) -> None:
    before = compute_availability(db, clinic.ana.id, TUESDAY, clinic.hour_session.id, clinic.branch_b.id)
    assert before.free_slots == []

    schedules.create_schedule_entry(db, clinic.ana.id, clinic.branch_b.id, 2, time(9, 0), time(11, 0))

    after = compute_availability(db, clinic.ana.id, TUESDAY, clinic.hour_session.id, clinic.branch_b.id)
    assert [slot.as_dict()['start'] for slot in after.free_slots] == ['09:00', '10:00']


def test_overlap_with_another_branch_conflicts(db, clinic) -> None:
    with pytest.raises(ConflictError):
        schedules.create_schedule_entry(db, clinic.ana.id, clinic.branch_b.id, 1, time(11, 0), time(14, 0))


def test_overlap_within_the_same_branch_is_allowed(db, clinic) -> None:
    entry = schedules.create_schedule_entry(db, clinic.ana.id, clinic.branch_a.id, 1, time(11, 0), time(14, 0))

    assert entry.id is not None
    assert len(schedules.list_schedule_entries(db, clinic.ana.id, clinic.branch_a.id)) == 3


def test_find_schedule_conflicts_reports_other_branch_entries(db, clinic) -> None:
    conflicts = schedules.find_schedule_conflicts(db, clinic.ana.id, clinic.branch_b.id, 1, time(16, 0), time(18, 0))

    assert [(entry.start_time, entry.end_time) for entry in conflicts] == [(time(13, 0), time(17, 0))]
    assert schedules.find_schedule_conflicts(db, clinic.ana.id, clinic.branch_b.id, 1, time(12, 0), time(13, 0)) == []


@pytest.mark.parametrize(
    ('day_of_week', 'start', 'end'),
    [(7, time(9, 0), time(10, 0)), (-1, time(9, 0), time(10, 0)), (2, time(10, 0), time(9, 0))],
)
def test_invalid_entries_are_rejected(db, clinic, day_of_week: int, start: time, end: time) -> None:
    with pytest.raises(ValidationError):
        schedules.create_schedule_entry(db, clinic.ana.id, clinic.branch_a.id, day_of_week, start, end)


def test_unknown_branch_is_not_found(db, clinic) -> None:
    with pytest.raises(NotFoundError):
        schedules.create_schedule_entry(db, clinic.ana.id, 9999, 2, time(9, 0), time(10, 0))


def test_update_and_delete_entry(db, clinic) -> None:
    entry = schedules.create_schedule_entry(db, clinic.ana.id, clinic.branch_b.id, 2, time(9, 0), time(11, 0))

    updated = schedules.update_schedule_entry(db, clinic.ana.id, entry.id, end_time=time(12, 0))
    assert updated.end_time == time(12, 0)

    schedules.delete_schedule_entry(db, clinic.ana.id, entry.id)
    with pytest.raises(NotFoundError):
        schedules.get_schedule_entry(db, clinic.ana.id, entry.id)


def test_blocked_date_lifecycle(db, clinic) -> None:
    blocked = schedules.create_blocked_date(db, clinic.ana.id, MONDAY, '  Training  ')
    assert blocked.reason == 'Training'
    assert compute_availability(db, clinic.ana.id, MONDAY, clinic.hour_session.id, clinic.branch_a.id).blocked

    with pytest.raises(ConflictError):
        schedules.create_blocked_date(db, clinic.ana.id, MONDAY)

    assert [row.date for row in schedules.list_blocked_dates(db, clinic.ana.id)] == [MONDAY]

    schedules.delete_blocked_date(db, clinic.ana.id, blocked.id)
    result = compute_availability(db, clinic.ana.id, MONDAY, clinic.hour_session.id, clinic.branch_a.id)
    assert result.total_free == 8


def test_deleting_unknown_blocked_date_is_not_found(db, clinic) -> None:
    with pytest.raises(NotFoundError):
        schedules.delete_blocked_date(db, clinic.ana.id, 12345)


def test_concurrent_cross_branch_entries_admit_only_one(session_factory, clinic) -> None:
    windows = [
        (clinic.branch_a.id, time(9, 0), time(11, 0)),
        (clinic.branch_b.id, time(10, 0), time(12, 0)),
    ]
    therapist_id = clinic.ana.id
    barrier = threading.Barrier(len(windows))
    outcomes: list[object] = []
    outcomes_lock = threading.Lock()

    def attempt(branch_id: int, start: time, end: time) -> None:
        db = session_factory()
        try:
            barrier.wait()
            outcome = schedules.create_schedule_entry(db, therapist_id, branch_id, 3, start, end).id
        except Exception as exc:  # collected and asserted below
            outcome = exc
        finally:
            db.close()
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=window) for window in windows]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len([outcome for outcome in outcomes if isinstance(outcome, int)]) == 1
    assert len([outcome for outcome in outcomes if isinstance(outcome, ConflictError)]) == 1
