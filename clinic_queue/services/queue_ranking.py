"""
Queue ranking engine.

Orders waiting patients most urgent first: emergencies, then seniors, then
everyone else by queue number.
"""

from collections.abc import Iterable
from datetime import date

from clinic_queue.models.queue_models import PatientRecord, PriorityTier
from clinic_queue.services.admission_policy import is_senior


def priority_tier(record: PatientRecord) -> PriorityTier:
    """Tier a record falls in for display and ordering."""
    if record.is_emergency:
        return PriorityTier.EMERGENCY
    if is_senior(record.age):
        return PriorityTier.SENIOR
    return PriorityTier.REGULAR


def ranking_key(record: PatientRecord) -> tuple:
    """
    Composite sort key, ascending means more urgent.

    registered_at and id only matter when ranking across days, where
    queue numbers repeat.
    """
    return (
        not record.is_emergency,
        not is_senior(record.age),
        record.queue_number,
        record.registered_at,
        record.id,
    )


def rank_queue(
    records: Iterable[PatientRecord],
    day: date | None = None,
) -> list[PatientRecord]:
    """
    Compute the ordered view of waiting patients.

    Args:
        records: Any snapshot of patient records; not modified.
        day: Restrict to records registered on this clinic day. None ranks
            every unserved record.

    Returns:
        Unserved records, most urgent first. Empty when nobody is waiting.
    """
    waiting = [
        r for r in records
        if not r.is_served and (day is None or r.registration_date == day)
    ]
    return sorted(waiting, key=ranking_key)
