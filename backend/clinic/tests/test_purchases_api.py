from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone as django_timezone
from rest_framework.test import APIClient

from clinic.models import PatientPurchase, PaymentConfirmation, Profile, Transaction, WalletEntry

from .factories import make_doctor, make_patient, make_payment, make_product, purchase_product
from .test_booking_api import ApiTestMixin


class PurchaseConfirmApiTests(ApiTestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.patient = make_patient()
        self._login(self.patient)
        self.plan = make_product(
            price=Decimal("200.00"),
            platform_commission_percent=Decimal("15.00"),
            validity_days=30,
            services=[
                {"service_type": "neurology", "session_count": 1},
                {
                    "service_type": "psychology",
                    "session_count": 4,
                    "is_locked": True,
                    "unlock_after_service": "neurology",
                },
            ],
        )

    def _confirm(self, reference, **extra):
        return self._request("post", "/api/purchases/confirm/", {"payment_reference": reference, **extra})

    def test_confirming_same_payment_twice_returns_same_purchase(self):
        payment = make_payment(self.patient, "200.00", metadata={"product_id": self.plan.pk})

        first = self._confirm(payment.reference)
        second = self._confirm(payment.reference)

        self.assertEqual(first.status_code, 201, first.data)
        self.assertFalse(first.data["already_confirmed"])
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data["already_confirmed"])
        self.assertEqual(first.data["purchase_id"], second.data["purchase_id"])

        purchase = PatientPurchase.objects.get(patient=self.patient)
        self.assertEqual(purchase.platform_fee, Decimal("30.00"))
        self.assertEqual(purchase.professional_pool, Decimal("170.00"))
        self.assertIsNotNone(purchase.expires_at)
        self.assertEqual(WalletEntry.objects.filter(purchase=purchase).count(), 2)
        self.assertEqual(Transaction.objects.filter(purchase=purchase).count(), 1)
        self.assertEqual(len(first.data["purchase"]["wallet_entries"]), 2)

        self.patient.refresh_from_db()
        self.assertTrue(self.patient.is_subscribed)

    def test_neurology_entry_is_bookable_and_gated_entry_is_locked(self):
        payment = make_payment(self.patient, "200.00", metadata={"product_id": self.plan.pk})
        self._confirm(payment.reference)

        entries = {entry.service_type: entry for entry in WalletEntry.objects.filter(patient=self.patient)}
        self.assertFalse(entries["neurology"].is_locked)
        self.assertTrue(entries["psychology"].is_locked)
        self.assertEqual(entries["psychology"].unlock_after_service, "neurology")

    def test_second_payment_for_held_product_returns_existing_purchase(self):
        purchase = purchase_product(self.patient, self.plan)
        payment = make_payment(self.patient, "200.00", metadata={"product_id": self.plan.pk})

        response = self._confirm(payment.reference)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["purchase_id"], purchase.pk)
        self.assertEqual(PatientPurchase.objects.filter(patient=self.patient).count(), 1)

    def test_unknown_reference_requires_payment(self):
        response = self._confirm("pi_missing")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["detail"].code, "payment_required")
        self.assertFalse(PatientPurchase.objects.exists())

    def test_other_patients_payment_cannot_be_used(self):
        payment = make_payment(make_patient(), "200.00", metadata={"product_id": self.plan.pk})

        response = self._confirm(payment.reference)

        self.assertEqual(response.status_code, 403)
        self.assertFalse(PatientPurchase.objects.exists())

    def test_failed_payment_cannot_confirm(self):
        payment = make_payment(
            self.patient,
            "200.00",
            status=PaymentConfirmation.Status.FAILED,
            metadata={"product_id": self.plan.pk},
        )

        response = self._confirm(payment.reference)

        self.assertEqual(response.status_code, 403)

    def test_inactive_product_is_not_found(self):
        retired = make_product(is_active=False)
        payment = make_payment(self.patient, "100.00", metadata={"product_id": retired.pk})

        response = self._confirm(payment.reference)

        self.assertEqual(response.status_code, 404)
        self.assertFalse(PatientPurchase.objects.exists())

    @override_settings(PURCHASE_CONFIRM_ALLOW_MANUAL=True)
    def test_manual_confirmation_when_enabled(self):
        response = self._confirm("manual_ref_1", product_id=self.plan.pk)

        self.assertEqual(response.status_code, 201, response.data)
        payment = PaymentConfirmation.objects.get(reference="manual_ref_1")
        self.assertEqual(payment.provider, PaymentConfirmation.Provider.MANUAL)
        self.assertEqual(payment.amount, Decimal("200.00"))
        self.assertEqual(payment.purchase_id, response.data["purchase_id"])

    @override_settings(PURCHASE_CONFIRM_ALLOW_MANUAL=True)
    def test_manual_confirmation_requires_product(self):
        response = self._confirm("manual_ref_2")
        self.assertEqual(response.status_code, 400)

    def test_doctor_cannot_confirm_purchase(self):
        self._login(make_doctor())
        response = self._confirm("pi_any")
        self.assertEqual(response.status_code, 403)


class PurchaseLifecycleApiTests(ApiTestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.patient = make_patient()
        self._login(self.patient)
        self.first = purchase_product(
            self.patient,
            make_product(services=[{"service_type": "psychology", "session_count": 2}]),
        )
        self.second = purchase_product(
            self.patient,
            make_product(services=[{"service_type": "nutrition", "session_count": 1}]),
        )

    def _cancel(self, purchase_id):
        return self._request("post", "/api/purchases/cancel/", {"purchase_id": purchase_id})

    def test_subscription_flag_drops_only_with_last_active_purchase(self):
        first = self._cancel(self.first.pk)

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data["status"], PatientPurchase.Status.CANCELLED)
        self.assertTrue(first.data["is_subscribed"])
        self.assertFalse(
            WalletEntry.objects.filter(purchase=self.first, is_locked=False).exists()
        )

        second = self._cancel(self.second.pk)

        self.assertEqual(second.status_code, 200)
        self.assertFalse(second.data["is_subscribed"])
        self.patient.refresh_from_db()
        self.assertFalse(self.patient.is_subscribed)

    def test_cancelling_twice_conflicts(self):
        self._cancel(self.first.pk)
        response = self._cancel(self.first.pk)
        self.assertEqual(response.status_code, 409)

    def test_cancelling_other_patients_purchase_is_not_found(self):
        other = purchase_product(
            make_patient(),
            make_product(services=[{"service_type": "psychology", "session_count": 1}]),
        )
        response = self._cancel(other.pk)
        self.assertEqual(response.status_code, 404)
        other.refresh_from_db()
        self.assertEqual(other.status, PatientPurchase.Status.ACTIVE)

    def test_cancellation_does_not_refund(self):
        self._cancel(self.first.pk)
        self.first.refresh_from_db()
        self.assertEqual(self.first.total_paid, Decimal("100.00"))
        self.assertEqual(Transaction.objects.filter(purchase=self.first).count(), 1)

    def test_lists_own_purchases(self):
        purchase_product(
            make_patient(),
            make_product(services=[{"service_type": "psychology", "session_count": 1}]),
        )

        response = self._request("get", "/api/purchases/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual({row["id"] for row in response.data}, {self.first.pk, self.second.pk})

    def test_wallet_summary_counts_only_active_purchases(self):
        self._cancel(self.second.pk)

        response = self._request("get", "/api/wallet/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(set(response.data["services"]), {"psychology"})
        self.assertEqual(response.data["summary"]["available_sessions"], 2)
        self.assertEqual(response.data["summary"]["locked_services"], 0)


class PurchaseExpiryTests(ApiTestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.patient = make_patient()
        self.purchase = purchase_product(
            self.patient,
            make_product(validity_days=30, services=[{"service_type": "psychology", "session_count": 2}]),
        )
        PatientPurchase.objects.filter(pk=self.purchase.pk).update(
            expires_at=django_timezone.now() - timedelta(days=1)
        )

    def test_admin_can_expire_purchase(self):
        admin = make_patient(role=Profile.Role.ADMIN)
        self._login(admin)

        response = self._request("post", f"/api/purchases/{self.purchase.pk}/expire/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PatientPurchase.Status.EXPIRED)
        self.assertFalse(WalletEntry.objects.filter(purchase=self.purchase, is_locked=False).exists())

    def test_patient_cannot_expire_purchase(self):
        self._login(self.patient)
        response = self._request("post", f"/api/purchases/{self.purchase.pk}/expire/")
        self.assertEqual(response.status_code, 403)

    def test_command_dry_run_changes_nothing(self):
        out = StringIO()

        call_command("expire_plans", "--dry-run", stdout=out)

        self.assertIn("DRY RUN", out.getvalue())
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.status, PatientPurchase.Status.ACTIVE)

    def test_command_expires_due_purchases(self):
        fresh = purchase_product(
            self.patient,
            make_product(validity_days=30, services=[{"service_type": "nutrition", "session_count": 1}]),
        )
        out = StringIO()

        call_command("expire_plans", stdout=out)

        self.assertIn("Expired 1 purchases", out.getvalue())
        self.purchase.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(self.purchase.status, PatientPurchase.Status.EXPIRED)
        self.assertEqual(fresh.status, PatientPurchase.Status.ACTIVE)
        self.patient.refresh_from_db()
        self.assertTrue(self.patient.is_subscribed)


class CatalogApiTests(TestCase):
    def test_plans_split_services_by_lock_state(self):
        make_product(
            services=[
                {"service_type": "neurology", "session_count": 1},
                {
                    "service_type": "psychology",
                    "session_count": 3,
                    "is_locked": True,
                    "unlock_after_service": "neurology",
                },
            ]
        )
        make_product(product_type="single_service", services=[{"service_type": "nutrition", "session_count": 1}])

        response = APIClient().get("/api/plans/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        plan = response.data[0]
        self.assertEqual([row["service_type"] for row in plan["unlocked_services"]], ["neurology"])
        self.assertEqual([row["service_type"] for row in plan["locked_services"]], ["psychology"])

    def test_inactive_products_are_hidden(self):
        product = make_product(is_active=False)
        response = APIClient().get(f"/api/products/{product.pk}/")
        self.assertEqual(response.status_code, 404)
