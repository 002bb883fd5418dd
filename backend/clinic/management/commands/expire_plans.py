from django.core.management.base import BaseCommand
from django.utils import timezone as django_timezone

from clinic.settlement.purchases import due_for_expiry, expire_due_purchases


class Command(BaseCommand):
    help = "Expire active purchases whose validity window has passed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the purchases that would expire without changing them",
        )

    def handle(self, *args, **options):
        now = django_timezone.now()
        due = list(due_for_expiry(now).values_list("pk", "patient_id", "expires_at"))

        if not due:
            self.stdout.write(self.style.SUCCESS("No purchases are due for expiry"))
            return

        self.stdout.write(f"Found {len(due)} purchases past their expiry date")
        if options["dry_run"]:
            self.stdout.write(self.style.WARNING("DRY RUN - No changes will be made"))
            for purchase_id, patient_id, expires_at in due:
                self.stdout.write(f"  purchase {purchase_id} (patient {patient_id}) expired at {expires_at:%Y-%m-%d %H:%M}")
            return

        expired = expire_due_purchases(now)
        self.stdout.write(self.style.SUCCESS(f"Expired {len(expired)} purchases"))
