from decimal import Decimal
from unittest.mock import patch

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from rest_framework.test import APIClient

from clinic.models import Appointment, PaymentConfirmation, Profile, Transaction, WalletEntry

from .factories import future_date, make_doctor, make_patient, make_payment, make_product, purchase_product


class ApiTestMixin:
    def _login(self, profile: Profile):
        self.claims = {"sub": profile.external_id, "role": profile.role}

    def _request(self, method: str, path: str, data=None):
        with patch("clinic.tools.auth.authentication.decode_access_token", return_value=self.claims):
            handler = getattr(self.client, method)
            return handler(path, data=data, format="json", HTTP_AUTHORIZATION="Bearer unit-test-token")


class BookingApiTests(ApiTestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.patient = make_patient()
        self._login(self.patient)

    def _book(self, doctor, **overrides):
        payload = {
            "doctor_id": doctor.pk,
            "date": future_date(),
            "time": "10:00",
            "appointment_for": "Self",
        }
        payload.update(overrides)
        return self._request("post", "/api/appointments/", payload)

    def test_booking_consumes_wallet_session(self):
        psychologist = make_doctor("psychologist", fee="60.00")
        plan = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        purchase = purchase_product(self.patient, plan)

        response = self._book(psychologist)

        self.assertEqual(response.status_code, 201, response.data)
        self.assertTrue(response.data["consumed_from_plan"])
        self.assertEqual(Decimal(response.data["fee"]), Decimal("0.00"))
        self.assertEqual(response.data["service_type"], "psychology")
        self.assertEqual(response.data["visit_type"], "first")

        entry = WalletEntry.objects.get(purchase=purchase, service_type="psychology")
        self.assertEqual(entry.remaining_sessions, 1)

        appointment = Appointment.objects.get(pk=response.data["appointment_id"])
        self.assertEqual(appointment.payment_method, "none")
        self.assertEqual(appointment.purchase_id, purchase.pk)
        self.assertEqual(appointment.product_id, plan.pk)
        txn = Transaction.objects.get(appointment=appointment)
        self.assertEqual(txn.transaction_type, Transaction.TransactionType.FOLLOWUP_APPOINTMENT)
        self.assertEqual(txn.amount, Decimal("0.00"))

    def test_paid_fallback_charges_doctor_fee(self):
        nutritionist = make_doctor("nutritionist", fee="45.00")
        payment = make_payment(self.patient, "45.00")

        response = self._book(nutritionist, payment_method="card", payment_reference=payment.reference)

        self.assertEqual(response.status_code, 201, response.data)
        self.assertFalse(response.data["consumed_from_plan"])
        self.assertEqual(Decimal(response.data["fee"]), Decimal("45.00"))
        self.assertEqual(response.data["visit_type"], "followup")

        appointment = Appointment.objects.get(pk=response.data["appointment_id"])
        txn = Transaction.objects.get(appointment=appointment)
        self.assertEqual(txn.transaction_type, Transaction.TransactionType.APPOINTMENT_PAYMENT)
        self.assertEqual(txn.platform_fee, Decimal("9.00"))
        self.assertEqual(txn.professional_earning, Decimal("36.00"))

        nutritionist.refresh_from_db()
        self.assertEqual(nutritionist.balance, Decimal("36.00"))
        payment.refresh_from_db()
        self.assertEqual(payment.appointment_id, appointment.pk)

    def test_paid_fallback_requires_payment_method(self):
        nutritionist = make_doctor("nutritionist", fee="45.00")

        response = self._book(nutritionist)

        self.assertEqual(response.status_code, 400)
        self.assertIn("payment_method", response.data)
        self.assertFalse(Appointment.objects.exists())

    def test_paid_fallback_without_captured_payment_is_rejected(self):
        nutritionist = make_doctor("nutritionist", fee="45.00")

        response = self._book(nutritionist, payment_method="card")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["detail"].code, "payment_required")
        self.assertFalse(Appointment.objects.exists())
        self.assertFalse(Transaction.objects.exists())

    def test_payment_cannot_be_spent_twice(self):
        nutritionist = make_doctor("nutritionist", fee="45.00")
        payment = make_payment(self.patient, "45.00")

        first = self._book(nutritionist, payment_method="card", payment_reference=payment.reference)
        second = self._book(
            nutritionist,
            time="11:00",
            payment_method="card",
            payment_reference=payment.reference,
        )

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 403)
        self.assertEqual(Appointment.objects.count(), 1)

    def test_failed_booking_rolls_back_wallet_consumption(self):
        psychologist = make_doctor("psychologist", fee="60.00")
        plan = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        purchase = purchase_product(self.patient, plan)

        with patch("clinic.settlement.booking.ledger.record_transaction", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                self._book(psychologist)

        entry = WalletEntry.objects.get(purchase=purchase, service_type="psychology")
        self.assertEqual(entry.remaining_sessions, 2)
        self.assertFalse(Appointment.objects.exists())

    def test_locked_service_without_payment_names_the_gate(self):
        physio = make_doctor("physiotherapist", fee="40.00")
        plan = make_product(
            services=[
                {
                    "service_type": "physiotherapy",
                    "session_count": 3,
                    "is_locked": True,
                    "unlock_after_service": "neurology",
                }
            ]
        )
        purchase_product(self.patient, plan)

        response = self._book(physio, payment_method="card")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["detail"].code, "service_locked")
        self.assertIn("neurology", str(response.data["detail"]))

    def test_group_session_is_always_paid_at_the_group_fee(self):
        coach = make_doctor("coach", fee="80.00")
        plan = make_product(services=[{"service_type": "coaching", "session_count": 2}])
        purchase_product(self.patient, plan)
        payment = make_payment(self.patient, "25.00")

        response = self._book(
            coach,
            service_type="group_session",
            payment_method="card",
            payment_reference=payment.reference,
        )

        self.assertEqual(response.status_code, 201, response.data)
        self.assertFalse(response.data["consumed_from_plan"])
        self.assertEqual(Decimal(response.data["fee"]), Decimal("25.00"))

    def test_confirmed_slot_conflicts(self):
        psychologist = make_doctor("psychologist", fee="60.00")
        other_patient = make_patient()
        Appointment.objects.create(
            patient=other_patient,
            doctor=psychologist,
            appointment_date=future_date(),
            appointment_time="10:00",
            appointment_for="Self",
            service_type="psychology",
            fee="60.00",
            status=Appointment.Status.ACCEPTED,
        )
        plan = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        purchase = purchase_product(self.patient, plan)

        response = self._book(psychologist)

        self.assertEqual(response.status_code, 409)
        entry = WalletEntry.objects.get(purchase=purchase, service_type="psychology")
        self.assertEqual(entry.remaining_sessions, 2)

    def test_rebooking_same_slot_cancels_stale_pending_duplicate(self):
        psychologist = make_doctor("psychologist", fee="60.00")
        plan = make_product(services=[{"service_type": "psychology", "session_count": 3}])
        purchase_product(self.patient, plan)

        first = self._book(psychologist)
        second = self._book(psychologist, time="10:00 - 10:45")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        stale = Appointment.objects.get(pk=first.data["appointment_id"])
        self.assertEqual(stale.status, Appointment.Status.CANCELLED)

    def test_rejects_past_dates_and_bad_times(self):
        psychologist = make_doctor("psychologist", fee="60.00")

        past = self._book(psychologist, date="2001-01-01", payment_method="card")
        bad_time = self._book(psychologist, time="ten o'clock", payment_method="card")
        bad_date = self._book(psychologist, date="01/02/2030", payment_method="card")

        self.assertEqual(past.status_code, 400)
        self.assertIn("date", past.data)
        self.assertEqual(bad_time.status_code, 400)
        self.assertIn("time", bad_time.data)
        self.assertEqual(bad_date.status_code, 400)

    def test_unknown_doctor_is_not_found(self):
        response = self._book(make_patient(), payment_method="card")
        self.assertEqual(response.status_code, 404)

    def test_service_type_is_required_when_speciality_is_unmapped(self):
        dermatologist = make_doctor("dermatologist", fee="70.00")
        response = self._book(dermatologist, payment_method="card")
        self.assertEqual(response.status_code, 400)
        self.assertIn("service_type", response.data)

    def test_doctors_cannot_book(self):
        doctor = make_doctor("psychologist")
        self._login(doctor)
        response = self._book(make_doctor("nutritionist"))
        self.assertEqual(response.status_code, 403)

    def test_patient_can_cancel_without_session_refund(self):
        psychologist = make_doctor("psychologist", fee="60.00")
        plan = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        purchase = purchase_product(self.patient, plan)
        booked = self._book(psychologist)

        response = self._request("post", f"/api/appointments/{booked.data['appointment_id']}/cancel/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], Appointment.Status.CANCELLED)
        entry = WalletEntry.objects.get(purchase=purchase, service_type="psychology")
        self.assertEqual(entry.remaining_sessions, 1)

        again = self._request("post", f"/api/appointments/{booked.data['appointment_id']}/cancel/")
        self.assertEqual(again.status_code, 409)

    def test_lists_own_appointments(self):
        psychologist = make_doctor("psychologist", fee="60.00")
        plan = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        purchase_product(self.patient, plan)
        self._book(psychologist)

        response = self._request("get", "/api/appointments/mine/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["doctor"]["id"], psychologist.pk)


class PaymentConfirmationModelTests(TestCase):
    def test_reference_is_unique(self):
        patient = make_patient()
        make_payment(patient, reference="pi_dup")
        with self.assertRaises(DjangoValidationError):
            PaymentConfirmation.objects.create(reference="pi_dup", patient=patient, amount="1.00")


class PaymentBindingApiTests(ApiTestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.patient = make_patient()
        self._login(self.patient)
        self.nutritionist = make_doctor("nutritionist", fee="45.00")
        self.date = future_date()

    def _book(self, payment):
        return self._request(
            "post",
            "/api/appointments/",
            {
                "doctor_id": self.nutritionist.pk,
                "date": self.date,
                "time": "10:00",
                "appointment_for": "Self",
                "payment_method": "card",
                "payment_reference": payment.reference,
            },
        )

    def _assert_rejected(self, response, payment):
        self.assertEqual(response.status_code, 403, response.data)
        self.assertEqual(response.data["detail"].code, "payment_required")
        self.assertFalse(Appointment.objects.filter(patient=self.patient).exists())
        payment.refresh_from_db()
        self.assertFalse(payment.is_spent)

    def test_plan_payment_cannot_fund_an_appointment(self):
        plan = make_product(services=[{"service_type": "psychology", "session_count": 2}])
        payment = make_payment(self.patient, "100.00", metadata={"product_id": plan.pk})

        self._assert_rejected(self._book(payment), payment)

    def test_payment_for_another_doctor_is_rejected(self):
        other = make_doctor("nutritionist", fee="45.00")
        payment = make_payment(
            self.patient,
            "45.00",
            metadata={"doctor_id": str(other.pk), "date": self.date, "time": "10:00"},
        )

        self._assert_rejected(self._book(payment), payment)

    def test_payment_for_another_slot_is_rejected(self):
        payment = make_payment(
            self.patient,
            "45.00",
            metadata={"doctor_id": str(self.nutritionist.pk), "date": self.date, "time": "11:30"},
        )

        self._assert_rejected(self._book(payment), payment)

    def test_payment_for_the_same_booking_is_accepted(self):
        payment = make_payment(
            self.patient,
            "45.00",
            metadata={"doctor_id": str(self.nutritionist.pk), "date": self.date, "time": "10:00:00"},
        )

        response = self._book(payment)

        self.assertEqual(response.status_code, 201, response.data)
        payment.refresh_from_db()
        self.assertEqual(payment.appointment_id, response.data["appointment_id"])
