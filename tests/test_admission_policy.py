"""Tests for the registration admission policy."""

import pytest

from clinic_queue.models.queue_models import AdmissionReason
from clinic_queue.services.admission_policy import SENIOR_AGE, decide_admission, is_senior


class TestDecideAdmission:
    """Auto-serve decision and reason priority."""

    def test_emergency_child_is_auto_served(self):
        decision = decide_admission(age=10, is_emergency=True)
        assert decision.auto_serve is True
        assert decision.reason == AdmissionReason.EMERGENCY

    def test_senior_is_auto_served(self):
        decision = decide_admission(age=70, is_emergency=False)
        assert decision.auto_serve is True
        assert decision.reason == AdmissionReason.SENIOR

    def test_manual_serve(self):
        decision = decide_admission(age=30, is_emergency=False, manual_serve=True)
        assert decision.auto_serve is True
        assert decision.reason == AdmissionReason.MANUAL

    def test_regular_patient_waits(self):
        decision = decide_admission(age=30, is_emergency=False, manual_serve=False)
        assert decision.auto_serve is False
        assert decision.reason == AdmissionReason.NONE

    def test_emergency_outranks_senior_and_manual(self):
        decision = decide_admission(age=80, is_emergency=True, manual_serve=True)
        assert decision.reason == AdmissionReason.EMERGENCY

    def test_senior_outranks_manual(self):
        decision = decide_admission(age=66, is_emergency=False, manual_serve=True)
        assert decision.reason == AdmissionReason.SENIOR

    @pytest.mark.parametrize("age,expected", [(64, False), (65, True), (0, False), (120, True)])
    def test_senior_boundary(self, age, expected):
        assert is_senior(age) is expected
        assert decide_admission(age=age, is_emergency=False).auto_serve is expected

    def test_threshold_constant(self):
        assert SENIOR_AGE == 65


class TestStatusMessage:
    """Operator confirmation text."""

    def test_auto_served_message_names_reason(self):
        decision = decide_admission(age=10, is_emergency=True)
        assert decision.status_message("Ana", 3) == (
            "Patient Ana registered successfully with Queue Number 3 and served "
            "immediately (Emergency case - auto-served)"
        )

    def test_queued_message_has_no_reason(self):
        decision = decide_admission(age=30, is_emergency=False)
        assert decision.status_message("Ben", 7) == (
            "Patient Ben registered successfully with Queue Number 7 and added to queue"
        )

    def test_manual_message(self):
        decision = decide_admission(age=30, is_emergency=False, manual_serve=True)
        assert decision.status_message("Cy", 1).endswith("(Manually marked as served)")
