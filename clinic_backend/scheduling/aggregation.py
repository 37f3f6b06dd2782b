"""Multi-therapist availability for pickers that compare several therapists at once."""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.scheduling.availability import AvailabilityResult, ServiceIds, compute_availability
from clinic_backend.scheduling.lookups import get_branch, get_services

logger = logging.getLogger(__name__)


@dataclass
class AggregateAvailability:
    results: list[AvailabilityResult] = field(default_factory=list)
    failed_therapist_ids: list[int] = field(default_factory=list)
    unavailable_therapist_ids: list[int] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed_therapist_ids)


def _compute_with_own_session(
    session_factory: Callable[[], Session],
    therapist_id: int,
    day: date,
    service_id: ServiceIds,
    branch_id: int | None,
) -> AvailabilityResult:
    db = session_factory()
    try:
        return compute_availability(db, therapist_id, day, service_id, branch_id)
    finally:
        db.close()


def compute_availability_for_many(
    session_factory: Callable[[], Session],
    therapist_ids: list[int],
    day: date,
    service_id: ServiceIds,
    branch_id: int | None = None,
    timeout: float | None = None,
    max_workers: int | None = None,
) -> AggregateAvailability:
    """Rank therapists by free slots on ``day``.

    The service and branch are checked once up front and raise ``NotFoundError``
    for the whole call. After that a therapist whose computation fails or does
    not finish within ``timeout`` seconds is dropped and recorded in
    ``failed_therapist_ids``; therapists who do not work that day are listed in
    ``unavailable_therapist_ids``.
    """
    db = session_factory()
    try:
        service_ids = [service.id for service in get_services(db, service_id)]
        if branch_id is not None:
            get_branch(db, branch_id)
    finally:
        db.close()

    aggregate = AggregateAvailability()
    unique_ids = list(dict.fromkeys(therapist_ids))
    if not unique_ids:
        return aggregate

    timeout = config.AGGREGATION_TIMEOUT_SECONDS if timeout is None else timeout
    max_workers = max_workers or config.AVAILABILITY_MAX_WORKERS

    executor = ThreadPoolExecutor(max_workers=min(max_workers, len(unique_ids)))
    try:
        futures = {
            executor.submit(_compute_with_own_session, session_factory, therapist_id, day, service_ids, branch_id): therapist_id
            for therapist_id in unique_ids
        }
        done, not_done = wait(futures, timeout=timeout)

        for future in not_done:
            future.cancel()
            therapist_id = futures[future]
            logger.warning('Availability for therapist %s timed out after %.1fs', therapist_id, timeout)
            aggregate.failed_therapist_ids.append(therapist_id)

        for future in done:
            therapist_id = futures[future]
            exc = future.exception()
            if exc is not None:
                logger.warning('Availability for therapist %s failed: %s', therapist_id, exc)
                aggregate.failed_therapist_ids.append(therapist_id)
                continue

            result = future.result()
            if not result.working_intervals:
                aggregate.unavailable_therapist_ids.append(therapist_id)
                continue
            aggregate.results.append(result)
    finally:
        # Stragglers keep their own sessions; do not wait for them.
        executor.shutdown(wait=False, cancel_futures=True)

    aggregate.results.sort(key=lambda result: (-result.total_free, result.therapist_name, result.therapist_id))
    aggregate.failed_therapist_ids.sort()
    aggregate.unavailable_therapist_ids.sort()

    if aggregate.failed_count:
        logger.info(
            'Aggregated availability for %d of %d therapists on %s (%d dropped)',
            len(aggregate.results),
            len(unique_ids),
            day.isoformat(),
            aggregate.failed_count,
        )

    return aggregate
