"""
Pydantic models for API request/response validation.

All models are explicit, documented, and enforce strict validation.
Invalid inputs fail closed with descriptive error messages.
"""

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from clinic_queue.models.queue_models import (
    AdmissionReason,
    DailyStatistics,
    PatientRecord,
    PriorityTier,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegisterPatientRequest(BaseModel):
    """
    Request to register a patient in today's queue.

    Attributes:
        name: Patient display name.
        age: Age in years; 65 and over counts as senior.
        is_emergency: Emergency case, served immediately.
        serve_immediately: Operator asks for the patient to be marked served.
    """
    name: str = Field(..., min_length=1, max_length=100, description="Patient full name")
    age: int = Field(..., ge=0, le=150, description="Patient age in years")
    is_emergency: bool = Field(default=False, description="Emergency case flag")
    serve_immediately: bool = Field(
        default=False,
        description="Mark the patient served at registration"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure the name is not just whitespace."""
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Name cannot be empty or whitespace only")
        return cleaned


class RegisterPatientResponse(BaseModel):
    """
    Outcome of a registration.

    Attributes:
        patient_id: Store id of the new record.
        queue_number: Today's queue number.
        auto_served: Whether the patient was served at registration.
        reason: Why the patient was auto-served (or `none`).
        message: Confirmation text for the operator.
    """
    patient_id: str = Field(..., description="Patient record id")
    queue_number: int = Field(..., ge=1, description="Assigned queue number")
    auto_served: bool = Field(..., description="Served at registration")
    reason: AdmissionReason = Field(..., description="Admission reason")
    message: str = Field(..., description="Confirmation message")


class ServePatientResponse(BaseModel):
    """Outcome of a serve command."""
    patient_id: str = Field(..., description="Patient record id")
    queue_number: int = Field(..., description="Patient queue number")
    is_served: bool = Field(default=True, description="Served state after the command")
    already_served: bool = Field(
        default=False,
        description="The patient was served before this command"
    )


class QueueEntry(BaseModel):
    """One waiting patient in the ranked queue view."""
    id: str
    name: str
    age: int
    is_emergency: bool
    is_senior: bool
    priority: PriorityTier
    queue_number: int
    registered_at: datetime


class QueueResponse(BaseModel):
    """The ranked queue of waiting patients, most urgent first."""
    day: date | None = Field(default=None, description="Clinic day the queue is scoped to")
    count: int = Field(..., ge=0, description="Number of waiting patients")
    patients: list[QueueEntry] = Field(default_factory=list, description="Ranked patients")
    generated_at: datetime = Field(default_factory=_utcnow, description="Snapshot timestamp")


class PatientResponse(BaseModel):
    """Confirmation view of a single patient record."""
    patient: PatientRecord
    message: str


class ServedTodayResponse(BaseModel):
    """Patients served on the current clinic day."""
    day: date
    count: int
    patients: list[PatientRecord] = Field(default_factory=list)


class DashboardResponse(BaseModel):
    """Daily statistics for the admin dashboard."""
    statistics: DailyStatistics
    subscribers: int = Field(..., ge=0, description="Live queue display connections")
    generated_at: datetime = Field(default_factory=_utcnow)


class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")


class ErrorResponse(BaseModel):
    """
    Standardized error response.

    Attributes:
        error: Error type/code.
        message: Human-readable error message.
        details: Additional error details.
        request_id: Request ID for tracing.
    """
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(default=None, description="Additional details")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
