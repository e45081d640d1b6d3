"""
Patient record store.

Two backends share one interface:
- InMemoryPatientStore: process-local, used for development and tests.
- ArangoPatientStore: ArangoDB collection with a persistent unique index
  on (registration_date, queue_number).

All database operations are logged for observability.
"""

import threading
from datetime import date, datetime
from typing import Any

from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import (
    ArangoClientError,
    ArangoServerError,
    CollectionCreateError,
    DatabaseCreateError,
    DocumentInsertError,
)

from clinic_queue.config.config import Settings, get_settings
from clinic_queue.config.logging_config import get_logger
from clinic_queue.models.queue_models import NewPatientRecord, PatientRecord

logger = get_logger(__name__)

# ArangoDB error number for a unique index violation
ARANGO_UNIQUE_CONSTRAINT_VIOLATED = 1210

QUEUE_NUMBER_INDEX = "idx_registration_date_queue_number"

# Unreachable hosts surface as OSError subclasses (ConnectionAbortedError,
# requests ConnectionError) rather than python-arango exceptions
STORE_FAILURES = (ArangoServerError, ArangoClientError, OSError)


class StoreError(Exception):
    """Base class for patient store failures."""


class DuplicateQueueNumberError(StoreError):
    """The (registration_date, queue_number) pair is already taken."""

    def __init__(self, day: date, queue_number: int):
        self.day = day
        self.queue_number = queue_number
        super().__init__(f"Queue number {queue_number} already assigned on {day.isoformat()}")


class StoreUnavailableError(StoreError):
    """The store could not be reached or rejected the operation transiently."""


# ============================================================================
# Document mapping
# ============================================================================

def record_to_document(record: NewPatientRecord) -> dict[str, Any]:
    """Serialize a record to a JSON-compatible document (no id)."""
    document = record.model_dump(mode="json")
    document.pop("id", None)
    return document


def document_to_record(document: dict[str, Any]) -> PatientRecord:
    """Build a PatientRecord from a stored document."""
    data = {k: v for k, v in document.items() if not k.startswith("_")}
    data["id"] = str(document.get("_key", document.get("id")))
    return PatientRecord.model_validate(data)


# ============================================================================
# Store interface
# ============================================================================

class PatientStore:
    """
    Interface shared by the patient store backends.

    Methods are synchronous; async callers run them in a worker thread.
    """

    backend_name = "abstract"

    def insert(self, record: NewPatientRecord) -> PatientRecord:
        """
        Persist a new record and assign its id.

        Raises:
            DuplicateQueueNumberError: queue number already used that day.
            StoreUnavailableError: the store could not complete the write.
        """
        raise NotImplementedError

    def get(self, patient_id: str) -> PatientRecord | None:
        """Return the record with this id, or None."""
        raise NotImplementedError

    def mark_served(
        self, patient_id: str, served_at: datetime
    ) -> tuple[PatientRecord, bool] | None:
        """
        Atomically flag a record as served.

        Returns:
            (record, changed) where changed is False if it was already
            served, or None when no record has this id.
        """
        raise NotImplementedError

    def list_patients(
        self,
        day: date | None = None,
        is_served: bool | None = None,
    ) -> list[PatientRecord]:
        """Return records filtered by registration day and served state."""
        raise NotImplementedError

    def queue_numbers(self, day: date) -> list[int]:
        """Queue numbers already assigned on `day`."""
        raise NotImplementedError

    def ping(self) -> bool:
        """Check the store is reachable."""
        return True

    def close(self) -> None:
        """Release any held connections."""


class InMemoryPatientStore(PatientStore):
    """Thread-safe process-local store enforcing the same constraints as ArangoDB."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, PatientRecord] = {}
        self._taken: set[tuple[date, int]] = set()
        self._next_id = 1

    def insert(self, record: NewPatientRecord) -> PatientRecord:
        slot = (record.registration_date, record.queue_number)
        with self._lock:
            if slot in self._taken:
                raise DuplicateQueueNumberError(*slot)
            patient_id = str(self._next_id)
            self._next_id += 1
            stored = PatientRecord(id=patient_id, **record.model_dump(exclude={"id"}))
            self._records[patient_id] = stored
            self._taken.add(slot)
        logger.debug("Patient inserted", patient_id=patient_id, queue_number=record.queue_number)
        return stored.model_copy()

    def get(self, patient_id: str) -> PatientRecord | None:
        with self._lock:
            record = self._records.get(patient_id)
        return record.model_copy() if record else None

    def mark_served(
        self, patient_id: str, served_at: datetime
    ) -> tuple[PatientRecord, bool] | None:
        with self._lock:
            record = self._records.get(patient_id)
            if record is None:
                return None
            if record.is_served:
                return record.model_copy(), False
            updated = record.model_copy(update={"is_served": True, "served_at": served_at})
            self._records[patient_id] = updated
        return updated.model_copy(), True

    def list_patients(
        self,
        day: date | None = None,
        is_served: bool | None = None,
    ) -> list[PatientRecord]:
        with self._lock:
            records = list(self._records.values())
        return [
            r.model_copy()
            for r in records
            if (day is None or r.registration_date == day)
            and (is_served is None or r.is_served == is_served)
        ]

    def queue_numbers(self, day: date) -> list[int]:
        with self._lock:
            return [qn for d, qn in self._taken if d == day]


class ArangoPatientStore(PatientStore):
    """
    Patient store backed by an ArangoDB collection.

    The database, collection and unique index are created on first
    connection if they do not exist.
    """

    backend_name = "arango"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._client: ArangoClient | None = None
        self._db: StandardDatabase | None = None

    @property
    def db(self) -> StandardDatabase:
        """Get or create the database connection."""
        if self._db is None:
            self._db = self._connect()
        return self._db

    @property
    def collection_name(self) -> str:
        return self.settings.arango_collection

    def _connect(self) -> StandardDatabase:
        settings = self.settings
        self._client = ArangoClient(hosts=settings.arango_host)
        logger.info("ArangoDB client initialized", host=settings.arango_host)

        # Connect to system database to create our database if needed
        sys_db = self._client.db(
            "_system",
            username=settings.arango_username,
            password=settings.arango_password,
        )
        if not sys_db.has_database(settings.arango_database):
            try:
                sys_db.create_database(settings.arango_database)
                logger.info("Created database", database=settings.arango_database)
            except DatabaseCreateError as e:
                logger.error("Failed to create database", error=str(e))
                raise

        db = self._client.db(
            settings.arango_database,
            username=settings.arango_username,
            password=settings.arango_password,
        )
        logger.info("Connected to database", database=settings.arango_database)
        self._init_collection(db)
        return db

    def _init_collection(self, db: StandardDatabase) -> None:
        name = self.collection_name
        if not db.has_collection(name):
            try:
                db.create_collection(name)
                logger.info("Created collection", collection=name)
            except CollectionCreateError as e:
                logger.warning("Collection creation failed", collection=name, error=str(e))

        # Idempotent on the server side for an identical definition
        db.collection(name).add_index(
            {
                "type": "persistent",
                "fields": ["registration_date", "queue_number"],
                "unique": True,
                "name": QUEUE_NUMBER_INDEX,
            }
        )

    def _query(self, aql: str, bind_vars: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            cursor = self.db.aql.execute(aql, bind_vars=bind_vars)
            return list(cursor)
        except STORE_FAILURES as e:
            logger.error("Database query failed", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    def insert(self, record: NewPatientRecord) -> PatientRecord:
        try:
            result = self.db.collection(self.collection_name).insert(
                record_to_document(record), return_new=True
            )
        except DocumentInsertError as e:
            if e.error_code == ARANGO_UNIQUE_CONSTRAINT_VIOLATED:
                raise DuplicateQueueNumberError(
                    record.registration_date, record.queue_number
                ) from e
            logger.error("Document insert failed", error=str(e))
            raise StoreUnavailableError(str(e)) from e
        except STORE_FAILURES as e:
            logger.error("Document insert failed", error=str(e))
            raise StoreUnavailableError(str(e)) from e

        logger.debug("Document inserted", collection=self.collection_name, key=result["_key"])
        return document_to_record(result["new"])

    def get(self, patient_id: str) -> PatientRecord | None:
        rows = self._query(
            "FOR p IN @@col FILTER p._key == @key LIMIT 1 RETURN p",
            {"@col": self.collection_name, "key": patient_id},
        )
        return document_to_record(rows[0]) if rows else None

    def mark_served(
        self, patient_id: str, served_at: datetime
    ) -> tuple[PatientRecord, bool] | None:
        # Single-document UPDATE is atomic in ArangoDB
        rows = self._query(
            """
            FOR p IN @@col
                FILTER p._key == @key
                LET changed = p.is_served != true
                UPDATE p WITH (changed ? {is_served: true, served_at: @served_at} : {}) IN @@col
                RETURN {record: NEW, changed: changed}
            """,
            {
                "@col": self.collection_name,
                "key": patient_id,
                "served_at": served_at.isoformat(),
            },
        )
        if not rows:
            return None
        return document_to_record(rows[0]["record"]), bool(rows[0]["changed"])

    def list_patients(
        self,
        day: date | None = None,
        is_served: bool | None = None,
    ) -> list[PatientRecord]:
        filters = []
        bind_vars: dict[str, Any] = {"@col": self.collection_name}
        if day is not None:
            filters.append("FILTER p.registration_date == @day")
            bind_vars["day"] = day.isoformat()
        if is_served is not None:
            filters.append("FILTER p.is_served == @is_served")
            bind_vars["is_served"] = is_served
        aql = "FOR p IN @@col " + " ".join(filters) + " SORT p.queue_number RETURN p"
        return [document_to_record(row) for row in self._query(aql, bind_vars)]

    def queue_numbers(self, day: date) -> list[int]:
        rows = self._query(
            "FOR p IN @@col FILTER p.registration_date == @day RETURN p.queue_number",
            {"@col": self.collection_name, "day": day.isoformat()},
        )
        return [int(qn) for qn in rows]

    def ping(self) -> bool:
        try:
            self.db.version()
            return True
        except (*STORE_FAILURES, StoreError) as e:
            logger.warning("ArangoDB ping failed", error=str(e))
            return False

    def close(self) -> None:
        """Close the database connection."""
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("Database connection closed")


# ============================================================================
# Store selection
# ============================================================================

# Singleton store instance
_store: PatientStore | None = None


def create_patient_store(settings: Settings | None = None) -> PatientStore:
    """Build the store backend named in settings."""
    settings = settings or get_settings()
    if settings.store_backend == "arango":
        return ArangoPatientStore(settings)
    return InMemoryPatientStore()


def get_patient_store() -> PatientStore:
    """Get or create the patient store singleton."""
    global _store
    if _store is None:
        _store = create_patient_store()
        logger.info("Patient store initialized", backend=_store.backend_name)
    return _store


def close_patient_store() -> None:
    """Close and forget the patient store singleton."""
    global _store
    if _store is not None:
        _store.close()
        _store = None
