from datetime import timedelta

from django.test import TestCase
from django.utils import timezone as django_timezone

from clinic.models import Appointment
from clinic.settlement import can_book_service, is_first_visit

from .factories import make_doctor, make_patient, make_product, purchase_product


class CanBookServiceTests(TestCase):
    def setUp(self):
        self.patient = make_patient()

    def test_group_sessions_are_always_bookable_without_wallet(self):
        eligibility = can_book_service(self.patient.pk, "group_session")
        self.assertTrue(eligibility.can_book)
        self.assertIsNone(eligibility.wallet_entry)
        self.assertFalse(eligibility.uses_wallet)

    def test_no_entry_means_no_sessions(self):
        eligibility = can_book_service(self.patient.pk, "nutrition")
        self.assertFalse(eligibility.can_book)
        self.assertIn("No available sessions", eligibility.reason)

    def test_locked_entry_names_its_gate(self):
        product = make_product(
            services=[
                {
                    "service_type": "physiotherapy",
                    "session_count": 3,
                    "is_locked": True,
                    "unlock_after_service": "neurology",
                }
            ]
        )
        purchase_product(self.patient, product)

        eligibility = can_book_service(self.patient.pk, "physiotherapy")
        self.assertFalse(eligibility.can_book)
        self.assertIn("neurology", eligibility.reason)
        self.assertIsNotNone(eligibility.wallet_entry)

    def test_unlocked_entry_is_returned(self):
        product = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        purchase = purchase_product(self.patient, product)

        eligibility = can_book_service(self.patient.pk, "psychology")
        self.assertTrue(eligibility.can_book)
        self.assertEqual(eligibility.wallet_entry.purchase_id, purchase.pk)


class FirstVisitTests(TestCase):
    def setUp(self):
        self.patient = make_patient()
        self.doctor = make_doctor("psychologist")

    def _appointment(self, status):
        return Appointment.objects.create(
            patient=self.patient,
            doctor=self.doctor,
            appointment_date=django_timezone.localdate() - timedelta(days=3),
            appointment_time="10:00",
            appointment_for="Self",
            service_type="psychology",
            fee="50.00",
            status=status,
        )

    def test_first_visit_until_a_completed_appointment_exists(self):
        self.assertTrue(is_first_visit(self.patient.pk, self.doctor.pk, "psychology"))

        self._appointment(Appointment.Status.CANCELLED)
        self.assertTrue(is_first_visit(self.patient.pk, self.doctor.pk, "psychology"))

        self._appointment(Appointment.Status.COMPLETED)
        self.assertFalse(is_first_visit(self.patient.pk, self.doctor.pk, "psychology"))

    def test_history_is_scoped_to_doctor_and_service(self):
        self._appointment(Appointment.Status.COMPLETED)
        other_doctor = make_doctor("psychologist")

        self.assertTrue(is_first_visit(self.patient.pk, other_doctor.pk, "psychology"))
        self.assertTrue(is_first_visit(self.patient.pk, self.doctor.pk, "nutrition"))
