from django.core.management.base import BaseCommand, CommandError

from activities.models import Activity
from core.exceptions import LedgerInconsistency, NotFound
from core.models import Tenant
from ledger.services import ledger


class Command(BaseCommand):
    help = "Fold every activity's transition history and compare it with the stored status"

    def add_arguments(self, parser):
        parser.add_argument("--tenant", help="Tenant slug to restrict the scan to")
        parser.add_argument("--activity", help="Check a single activity id")

    def handle(self, *args, **options):
        activities = Activity.objects.all().only("id", "tenant_id")

        if options["tenant"]:
            try:
                tenant = Tenant.objects.get(slug=options["tenant"])
            except Tenant.DoesNotExist:
                raise CommandError(f"Unknown tenant: {options['tenant']}")
            activities = activities.filter(tenant=tenant)

        if options["activity"]:
            activities = activities.filter(pk=options["activity"])

        checked = 0
        failures = 0
        for activity in activities.iterator():
            checked += 1
            try:
                ledger.verify_consistency(activity.tenant_id, activity.pk)
            except LedgerInconsistency as exc:
                failures += 1
                problems = exc.context.get("problems", [])
                self.stdout.write(self.style.ERROR(f"{activity.pk}: " + "; ".join(problems)))
            except NotFound:
                continue

        summary = f"Checked {checked} activities, {failures} inconsistent."
        if failures:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
