from django.core.management.base import BaseCommand

from bus import services
from bus.models import EventDelivery


class Command(BaseCommand):
    help = "Replay dead-lettered event deliveries"

    def add_arguments(self, parser):
        parser.add_argument("ids", nargs="*", type=int, help="Delivery ids (default: all dead letters)")
        parser.add_argument("--consumer", help="Only replay deliveries for this consumer")
        parser.add_argument("--dry-run", action="store_true", help="List what would be replayed")

    def handle(self, *args, **options):
        qs = services.dead_letters()
        if options["ids"]:
            qs = qs.filter(pk__in=options["ids"])
        if options["consumer"]:
            qs = qs.filter(consumer=options["consumer"])

        deliveries = list(qs)
        if not deliveries:
            self.stdout.write("No dead letters to replay.")
            return

        for delivery in deliveries:
            label = f"#{delivery.pk} {delivery.event} -> {delivery.consumer}"
            if options["dry_run"]:
                self.stdout.write(f"would replay {label}: {delivery.last_error}")
                continue
            services.replay_dead_letter(delivery.pk)
            self.stdout.write(self.style.SUCCESS(f"replayed {label}"))

        if not options["dry_run"]:
            remaining = EventDelivery.objects.filter(status=EventDelivery.STATUS_DEAD_LETTERED).count()
            self.stdout.write(f"{len(deliveries)} replayed, {remaining} dead letters remaining.")
