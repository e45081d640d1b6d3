"""
Admission policy applied when a patient is registered.

Emergency and senior patients are served on arrival; the operator can also
ask for any patient to be marked served immediately.
"""

from clinic_queue.models.queue_models import AdmissionDecision, AdmissionReason

SENIOR_AGE = 65


def is_senior(age: int) -> bool:
    """Patients aged 65 and over get senior priority."""
    return age >= SENIOR_AGE


def decide_admission(
    age: int,
    is_emergency: bool,
    manual_serve: bool = False,
) -> AdmissionDecision:
    """
    Decide whether a new patient is auto-served.

    The reason reported is the highest-priority one that applies:
    emergency, then senior, then manual.

    Args:
        age: Patient age in years.
        is_emergency: Emergency case flag.
        manual_serve: Operator asked to mark the patient served.

    Returns:
        AdmissionDecision with the served flag and its reason.
    """
    if is_emergency:
        reason = AdmissionReason.EMERGENCY
    elif is_senior(age):
        reason = AdmissionReason.SENIOR
    elif manual_serve:
        reason = AdmissionReason.MANUAL
    else:
        reason = AdmissionReason.NONE

    return AdmissionDecision(auto_serve=reason is not AdmissionReason.NONE, reason=reason)
