from django.core.management.base import BaseCommand
from django.utils import timezone

from rides.models import Ride
from services.ride_management import mark_departed_rides


class Command(BaseCommand):
    help = "Mark open/full rides whose departure time has passed as departed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many rides would be marked without changing them.",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            pending = Ride.objects.filter(
                status__in=Ride.ACTIVE_STATUSES,
                departure_time__lte=timezone.now(),
            ).count()
            self.stdout.write(
                self.style.WARNING(f"DRY RUN: Would mark {pending} ride(s) as departed.")
            )
            return

        count = mark_departed_rides()
        self.stdout.write(self.style.SUCCESS(f"Marked {count} ride(s) as departed."))
