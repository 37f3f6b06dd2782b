"""Per-therapist write serialization.

An in-process lock per therapist plus a ``SELECT ... FOR UPDATE`` on the
therapist row, so writes that can make a therapist busy are totally ordered
across threads and, on PostgreSQL, across worker processes. Locks are taken
in id order.
"""

from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from sqlalchemy.orm import Session

from clinic_backend.models.therapist import Therapist

_registry_lock = Lock()
_therapist_locks: dict[int, Lock] = {}


def therapist_lock(therapist_id: int) -> Lock:
    with _registry_lock:
        return _therapist_locks.setdefault(therapist_id, Lock())


@contextmanager
def serialized_for_therapists(db: Session, therapist_ids: list[int]) -> Iterator[None]:
    ids = sorted(set(therapist_ids))
    locks = [therapist_lock(therapist_id) for therapist_id in ids]

    for lock in locks:
        lock.acquire()
    try:
        db.query(Therapist.id).filter(Therapist.id.in_(ids)).order_by(Therapist.id).with_for_update().all()
        yield
    except Exception:
        db.rollback()
        raise
    finally:
        for lock in reversed(locks):
            lock.release()
