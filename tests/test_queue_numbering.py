"""Tests for per-day queue number assignment."""

import asyncio
from datetime import date, datetime

import pytest

from clinic_queue.database.database import (
    DuplicateQueueNumberError,
    InMemoryPatientStore,
    StoreUnavailableError,
)
from clinic_queue.models.queue_models import NewPatientRecord
from clinic_queue.services.errors import QueueNumberUnavailableError
from clinic_queue.services.queue_numbering import QueueNumberAllocator, next_queue_number

DAY = date(2024, 3, 11)


def builder(day: date = DAY, name: str = "Patient"):
    def build(queue_number: int) -> NewPatientRecord:
        return NewPatientRecord(
            name=name,
            age=30,
            registered_at=datetime.combine(day, datetime.min.time()),
            registration_date=day,
            queue_number=queue_number,
        )
    return build


class StaleReadStore(InMemoryPatientStore):
    """Reports no assigned numbers for the first reads, like a lagging replica."""

    def __init__(self, stale_reads: int):
        super().__init__()
        self.stale_reads = stale_reads
        self.insert_attempts = 0

    def queue_numbers(self, day):
        if self.stale_reads > 0:
            self.stale_reads -= 1
            return []
        return super().queue_numbers(day)

    def insert(self, record):
        self.insert_attempts += 1
        return super().insert(record)


class FlakyStore(InMemoryPatientStore):
    """Fails the first inserts as if the database were unreachable."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    def insert(self, record):
        if self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("connection reset")
        return super().insert(record)


class TestNextQueueNumber:
    def test_starts_at_one(self):
        assert next_queue_number([]) == 1

    def test_max_plus_one(self):
        assert next_queue_number([1, 2, 3]) == 4

    def test_gaps_are_not_filled(self):
        assert next_queue_number([1, 5]) == 6


class TestAllocator:
    """Allocation with the unique constraint and retries."""

    def test_sequential_numbers(self):
        store = InMemoryPatientStore()
        allocator = QueueNumberAllocator(store, retry_delay_seconds=0)

        async def scenario():
            return [await allocator.allocate_and_insert(DAY, builder()) for _ in range(3)]

        records = asyncio.run(scenario())

        assert [r.queue_number for r in records] == [1, 2, 3]

    def test_concurrent_registrations_have_no_gaps_or_duplicates(self):
        store = InMemoryPatientStore()
        allocator = QueueNumberAllocator(store, retry_delay_seconds=0)
        n = 25

        async def scenario():
            await asyncio.gather(
                *(allocator.allocate_and_insert(DAY, builder(name=f"P{i}")) for i in range(n))
            )

        asyncio.run(scenario())

        assert sorted(store.queue_numbers(DAY)) == list(range(1, n + 1))

    def test_independent_allocators_sharing_a_store(self):
        # Two processes writing to one database
        store = InMemoryPatientStore()
        first = QueueNumberAllocator(store, max_retries=50, retry_delay_seconds=0)
        second = QueueNumberAllocator(store, max_retries=50, retry_delay_seconds=0)

        async def scenario():
            await asyncio.gather(
                *(first.allocate_and_insert(DAY, builder()) for _ in range(10)),
                *(second.allocate_and_insert(DAY, builder()) for _ in range(10)),
            )

        asyncio.run(scenario())

        assert sorted(store.queue_numbers(DAY)) == list(range(1, 21))

    def test_numbers_restart_each_day(self):
        store = InMemoryPatientStore()
        allocator = QueueNumberAllocator(store, retry_delay_seconds=0)
        next_day = date(2024, 3, 12)

        async def scenario():
            await allocator.allocate_and_insert(DAY, builder(DAY))
            await allocator.allocate_and_insert(DAY, builder(DAY))
            return await allocator.allocate_and_insert(next_day, builder(next_day))

        record = asyncio.run(scenario())

        assert record.queue_number == 1
        assert record.registration_date == next_day

    def test_conflict_is_retried_with_a_fresh_number(self):
        store = StaleReadStore(stale_reads=1)
        store.insert(builder()(1))
        store.insert_attempts = 0
        allocator = QueueNumberAllocator(store, retry_delay_seconds=0)

        record = asyncio.run(allocator.allocate_and_insert(DAY, builder()))

        assert record.queue_number == 2
        assert store.insert_attempts == 2

    def test_transient_store_failure_is_retried(self):
        store = FlakyStore(failures=2)
        allocator = QueueNumberAllocator(store, max_retries=3, retry_delay_seconds=0)

        record = asyncio.run(allocator.allocate_and_insert(DAY, builder()))

        assert record.queue_number == 1

    def test_exhausted_retries_persist_nothing(self):
        store = StaleReadStore(stale_reads=100)
        store.insert(builder()(1))
        allocator = QueueNumberAllocator(store, max_retries=3, retry_delay_seconds=0)

        with pytest.raises(QueueNumberUnavailableError) as exc_info:
            asyncio.run(allocator.allocate_and_insert(DAY, builder()))

        assert exc_info.value.details == {"day": DAY.isoformat(), "attempts": 3}
        assert [r.queue_number for r in store.list_patients(DAY)] == [1]
        assert len(store.list_patients()) == 1

    def test_store_rejects_duplicate_slot(self):
        store = InMemoryPatientStore()
        store.insert(builder()(1))

        with pytest.raises(DuplicateQueueNumberError) as exc_info:
            store.insert(builder()(1))

        assert exc_info.value.queue_number == 1
        assert exc_info.value.day == DAY
