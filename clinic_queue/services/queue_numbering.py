"""
Per-day queue number assignment.

Numbers restart at 1 each clinic day. Assignment is serialized per day
within the process, and the store's unique (registration_date,
queue_number) constraint catches races with other processes; a rejected
insert is retried with a freshly computed number.
"""

import asyncio
from collections.abc import Callable, Iterable
from datetime import date

from clinic_queue.config.logging_config import get_logger
from clinic_queue.database.database import (
    DuplicateQueueNumberError,
    PatientStore,
    StoreUnavailableError,
)
from clinic_queue.models.queue_models import NewPatientRecord, PatientRecord
from clinic_queue.services.errors import QueueNumberUnavailableError

logger = get_logger(__name__)


def next_queue_number(assigned: Iterable[int]) -> int:
    """Highest number already assigned that day plus one, starting at 1."""
    return max(assigned, default=0) + 1


class QueueNumberAllocator:
    """
    Assigns queue numbers and inserts the new record in one retried step.

    A record is only persisted with the number it was built for, so a
    failed attempt never leaves a record with a missing or duplicate number.
    """

    def __init__(
        self,
        store: PatientStore,
        max_retries: int = 5,
        retry_delay_seconds: float = 0.05,
    ):
        self.store = store
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._day_locks: dict[date, asyncio.Lock] = {}

    def _lock_for(self, day: date) -> asyncio.Lock:
        lock = self._day_locks.get(day)
        if lock is None:
            # Locks for past days are no longer contended
            for stale in [d for d, held in self._day_locks.items() if d < day and not held.locked()]:
                del self._day_locks[stale]
            lock = self._day_locks[day] = asyncio.Lock()
        return lock

    async def allocate_and_insert(
        self,
        day: date,
        build_record: Callable[[int], NewPatientRecord],
    ) -> PatientRecord:
        """
        Insert the record built for the next free queue number of `day`.

        Args:
            day: Clinic day the patient registers on.
            build_record: Builds the record to persist for a queue number.

        Returns:
            The stored record.

        Raises:
            QueueNumberUnavailableError: every attempt hit a conflict or a
                store failure.
        """
        async with self._lock_for(day):
            for attempt in range(1, self.max_retries + 1):
                try:
                    assigned = await asyncio.to_thread(self.store.queue_numbers, day)
                    queue_number = next_queue_number(assigned)
                    record = await asyncio.to_thread(self.store.insert, build_record(queue_number))
                except DuplicateQueueNumberError as e:
                    logger.warning(
                        "Queue number conflict, retrying",
                        day=day.isoformat(),
                        queue_number=e.queue_number,
                        attempt=attempt,
                    )
                except StoreUnavailableError as e:
                    logger.warning(
                        "Store unavailable during queue number assignment",
                        day=day.isoformat(),
                        attempt=attempt,
                        error=str(e),
                    )
                else:
                    return record

                if attempt < self.max_retries and self.retry_delay_seconds:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        logger.error(
            "Queue number assignment failed",
            day=day.isoformat(),
            attempts=self.max_retries,
        )
        raise QueueNumberUnavailableError(
            "Could not assign a queue number, please retry",
            {"day": day.isoformat(), "attempts": self.max_retries},
        )
