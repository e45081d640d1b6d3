"""
Pydantic models for the patient queue domain.

This module defines the stored patient record, the admission decision
taken at registration time and the daily statistics snapshot.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


# ============================================================================
# Patient records
# ============================================================================

class NewPatientRecord(BaseModel):
    """A patient record that has not been assigned a store id yet."""
    name: str = Field(..., min_length=1, description="Display name")
    age: int = Field(..., ge=0, description="Age in years")
    is_emergency: bool = Field(default=False, description="Emergency case flag")
    registered_at: datetime = Field(..., description="Registration timestamp")
    registration_date: date = Field(..., description="Clinic day the patient registered on")
    queue_number: int = Field(..., ge=1, description="Per-day sequential queue number")
    is_served: bool = Field(default=False, description="Whether the patient has been served")
    served_at: datetime | None = Field(default=None, description="When the patient was served")


class PatientRecord(NewPatientRecord):
    """
    A persisted patient record.

    `id` is assigned by the store and never changes. `is_served` moves from
    false to true at most once.
    """
    id: str = Field(..., description="Store-assigned identifier")


class PriorityTier(str, Enum):
    """Queue priority tiers, most urgent first."""
    EMERGENCY = "emergency"
    SENIOR = "senior"
    REGULAR = "regular"


# ============================================================================
# Admission
# ============================================================================

class AdmissionReason(str, Enum):
    """Why a patient was (or was not) served at registration."""
    EMERGENCY = "emergency"
    SENIOR = "senior"
    MANUAL = "manual"
    NONE = "none"


_REASON_SUFFIXES: dict[AdmissionReason, str] = {
    AdmissionReason.EMERGENCY: " (Emergency case - auto-served)",
    AdmissionReason.SENIOR: " (Senior patient - auto-served)",
    AdmissionReason.MANUAL: " (Manually marked as served)",
    AdmissionReason.NONE: "",
}


class AdmissionDecision(BaseModel):
    """Outcome of the admission policy for one registration."""
    auto_serve: bool = Field(..., description="Mark the patient served at creation")
    reason: AdmissionReason = Field(..., description="Highest-priority reason for the decision")

    def status_message(self, name: str, queue_number: int) -> str:
        """Human-readable confirmation for the registering operator."""
        status = "served immediately" if self.auto_serve else "added to queue"
        return (
            f"Patient {name} registered successfully with Queue Number {queue_number} "
            f"and {status}{_REASON_SUFFIXES[self.reason]}"
        )


# ============================================================================
# Statistics
# ============================================================================

class DailyStatistics(BaseModel):
    """Aggregate figures for one clinic day."""
    day: date
    total_registered: int = 0
    served: int = 0
    waiting: int = 0
    emergency_count: int = 0
    average_wait_minutes: float = 0.0
    peak_hour: int | None = None
