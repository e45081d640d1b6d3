"""
Queue command and query service.

Registers and serves patients, produces the ranked queue and daily
statistics, and signals the notification bus after every mutation.
"""

import asyncio
import time
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import date, datetime

from clinic_queue.config.config import Settings, get_settings
from clinic_queue.config.logging_config import get_logger
from clinic_queue.database.database import PatientStore, get_patient_store
from clinic_queue.models.models import (
    PatientResponse,
    QueueEntry,
    QueueResponse,
    RegisterPatientRequest,
    RegisterPatientResponse,
    ServedTodayResponse,
    ServePatientResponse,
)
from clinic_queue.models.queue_models import DailyStatistics, NewPatientRecord, PatientRecord
from clinic_queue.services.admin_auth import ANONYMOUS_ADMIN, AdminContext
from clinic_queue.services.admission_policy import decide_admission, is_senior
from clinic_queue.services.errors import PatientNotFoundError
from clinic_queue.services.notification_bus import QUEUE_UPDATED, QueueNotificationBus
from clinic_queue.services.queue_numbering import QueueNumberAllocator
from clinic_queue.services.queue_ranking import priority_tier, rank_queue

logger = get_logger(__name__)

_SYSTEM_ADMIN = AdminContext(admin_id=ANONYMOUS_ADMIN, authenticated=False)


def to_queue_entry(record: PatientRecord) -> QueueEntry:
    """Project a record onto the public queue view."""
    return QueueEntry(
        id=record.id,
        name=record.name,
        age=record.age,
        is_emergency=record.is_emergency,
        is_senior=is_senior(record.age),
        priority=priority_tier(record),
        queue_number=record.queue_number,
        registered_at=record.registered_at,
    )


def compute_daily_statistics(records: Iterable[PatientRecord], day: date) -> DailyStatistics:
    """
    Aggregate one day's registrations.

    Wait time is measured from registration to serving; auto-served
    patients count with a wait of zero.
    """
    todays = [r for r in records if r.registration_date == day]
    served = [r for r in todays if r.is_served]

    waits = [
        (r.served_at - r.registered_at).total_seconds() / 60
        for r in served
        if r.served_at is not None
    ]
    average_wait = round(sum(waits) / len(waits), 2) if waits else 0.0

    peak_hour = None
    if todays:
        by_hour = Counter(r.registered_at.hour for r in todays)
        # Earliest hour wins a tie
        peak_hour = min(by_hour, key=lambda hour: (-by_hour[hour], hour))

    return DailyStatistics(
        day=day,
        total_registered=len(todays),
        served=len(served),
        waiting=len(todays) - len(served),
        emergency_count=sum(1 for r in todays if r.is_emergency),
        average_wait_minutes=average_wait,
        peak_hour=peak_hour,
    )


class QueueService:
    """
    Command surface of the clinic queue.

    Store calls run in worker threads so a slow backend does not block the
    event loop. `clock` decides what "today" is and is injectable for tests.
    """

    def __init__(
        self,
        store: PatientStore | None = None,
        bus: QueueNotificationBus | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the queue service.

        Args:
            store: Patient record store. Uses the configured backend if not provided.
            bus: Notification bus. A new one sized from settings if not provided.
            settings: Application settings. Uses default if not provided.
            clock: Returns the current time. Defaults to local wall-clock time.
        """
        self.settings = settings or get_settings()
        self.store = store if store is not None else get_patient_store()
        self.bus = bus if bus is not None else QueueNotificationBus(
            max_subscribers=self.settings.max_subscribers,
            buffer_size=self.settings.subscriber_buffer_size,
        )
        self.clock = clock or datetime.now
        self.allocator = QueueNumberAllocator(
            self.store,
            max_retries=self.settings.queue_number_max_retries,
            retry_delay_seconds=self.settings.queue_number_retry_delay_seconds,
        )

    def current_day(self) -> date:
        """Clinic day according to the service clock."""
        return self.clock().date()

    def _queue_scope(self) -> date | None:
        return self.current_day() if self.settings.queue_scope == "today" else None

    async def register_patient(
        self,
        request: RegisterPatientRequest,
        admin: AdminContext = _SYSTEM_ADMIN,
    ) -> RegisterPatientResponse:
        """
        Register a patient, assign today's next queue number and notify subscribers.

        Args:
            request: Validated registration details.
            admin: Admin issuing the command.

        Returns:
            RegisterPatientResponse with the queue number and admission outcome.

        Raises:
            QueueNumberUnavailableError: no queue number could be assigned;
                nothing was persisted.
        """
        start_time = time.perf_counter()
        now = self.clock()
        day = now.date()
        decision = decide_admission(request.age, request.is_emergency, request.serve_immediately)

        def build_record(queue_number: int) -> NewPatientRecord:
            return NewPatientRecord(
                name=request.name,
                age=request.age,
                is_emergency=request.is_emergency,
                registered_at=now,
                registration_date=day,
                queue_number=queue_number,
                is_served=decision.auto_serve,
                served_at=now if decision.auto_serve else None,
            )

        record = await self.allocator.allocate_and_insert(day, build_record)
        processing_time = int((time.perf_counter() - start_time) * 1000)

        logger.info(
            "Patient registered",
            patient_id=record.id,
            queue_number=record.queue_number,
            day=day.isoformat(),
            auto_served=decision.auto_serve,
            reason=decision.reason.value,
            admin_id=admin.admin_id,
            processing_time_ms=processing_time,
        )

        self.bus.broadcast(QUEUE_UPDATED)

        return RegisterPatientResponse(
            patient_id=record.id,
            queue_number=record.queue_number,
            auto_served=decision.auto_serve,
            reason=decision.reason,
            message=decision.status_message(record.name, record.queue_number),
        )

    async def serve_patient(
        self,
        patient_id: str,
        admin: AdminContext = _SYSTEM_ADMIN,
    ) -> ServePatientResponse:
        """
        Mark a patient served and notify subscribers.

        Serving an already served patient succeeds without changing it.

        Raises:
            PatientNotFoundError: no record has this id; nothing changed.
        """
        result = await asyncio.to_thread(self.store.mark_served, patient_id, self.clock())
        if result is None:
            logger.info("Serve requested for unknown patient", patient_id=patient_id)
            raise PatientNotFoundError(patient_id)

        record, changed = result
        logger.info(
            "Patient served" if changed else "Patient already served",
            patient_id=record.id,
            queue_number=record.queue_number,
            admin_id=admin.admin_id,
        )

        self.bus.broadcast(QUEUE_UPDATED)

        return ServePatientResponse(
            patient_id=record.id,
            queue_number=record.queue_number,
            is_served=record.is_served,
            already_served=not changed,
        )

    async def get_queue(self) -> QueueResponse:
        """Ranked view of waiting patients, most urgent first."""
        day = self._queue_scope()
        records = await asyncio.to_thread(self.store.list_patients, day, False)
        ranked = rank_queue(records, day)
        return QueueResponse(
            day=day,
            count=len(ranked),
            patients=[to_queue_entry(r) for r in ranked],
        )

    async def get_patient(self, patient_id: str) -> PatientResponse:
        """
        Confirmation view of one patient.

        Raises:
            PatientNotFoundError: no record has this id.
        """
        record = await asyncio.to_thread(self.store.get, patient_id)
        if record is None:
            raise PatientNotFoundError(patient_id)
        return PatientResponse(
            patient=record,
            message=(
                f"Patient {record.name} has been successfully registered "
                f"with Queue Number {record.queue_number}."
            ),
        )

    async def get_daily_statistics(self, day: date | None = None) -> DailyStatistics:
        """Statistics for `day`, today by default."""
        day = day or self.current_day()
        records = await asyncio.to_thread(self.store.list_patients, day)
        return compute_daily_statistics(records, day)

    async def get_served_today(self) -> ServedTodayResponse:
        """Patients served among today's registrations."""
        day = self.current_day()
        records = await asyncio.to_thread(self.store.list_patients, day, True)
        records.sort(key=lambda r: r.queue_number)
        return ServedTodayResponse(day=day, count=len(records), patients=records)

    async def check_store(self) -> bool:
        """Whether the record store is reachable."""
        return await asyncio.to_thread(self.store.ping)


# Singleton instance
_queue_service: QueueService | None = None


def get_queue_service() -> QueueService:
    """Get the queue service singleton."""
    global _queue_service
    if _queue_service is None:
        _queue_service = QueueService()
    return _queue_service
