"""
Domain errors raised by the queue services.

Each error carries a stable `error_code` and the HTTP status the API maps
it to, so the command surface stays independent of FastAPI.
"""

from typing import Any


class QueueServiceError(Exception):
    """Base class for errors surfaced to callers of the queue commands."""

    error_code = "QUEUE_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class PatientNotFoundError(QueueServiceError):
    """No patient record has the requested id."""

    error_code = "PATIENT_NOT_FOUND"
    status_code = 404

    def __init__(self, patient_id: str):
        super().__init__(f"Patient {patient_id} not found", {"patient_id": patient_id})
        self.patient_id = patient_id


class QueueNumberUnavailableError(QueueServiceError):
    """A queue number could not be assigned; the registration was not applied."""

    error_code = "QUEUE_NUMBER_UNAVAILABLE"
    status_code = 503


class SubscriberLimitError(QueueServiceError):
    """The notification bus already holds the maximum number of subscribers."""

    error_code = "SUBSCRIBER_LIMIT_REACHED"
    status_code = 503


class AdminAuthenticationError(QueueServiceError):
    """The request did not carry a valid admin token."""

    error_code = "ADMIN_UNAUTHORIZED"
    status_code = 401
