import logging
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from apps.assignments.services import AssignmentDispatcher

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Time out unanswered waiter assignment offers and pass them to the next waiter."

    def add_arguments(self, parser):
        parser.add_argument(
            "--interval",
            type=float,
            default=settings.RESTAURANT_SETTINGS["ASSIGNMENT_SWEEP_INTERVAL"],
            help="Seconds between sweeps",
        )
        parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")

    def handle(self, *args, **options):
        dispatcher = AssignmentDispatcher()

        if options["once"]:
            expired = dispatcher.expire_overdue()
            self.stdout.write(f"Expired {expired} assignment(s)")
            return

        interval = options["interval"]
        self.stdout.write(f"Sweeping assignment timeouts every {interval}s")
        try:
            while True:
                expired = dispatcher.expire_overdue()
                if expired:
                    logger.info("Expired %d assignment(s)", expired)
                time.sleep(interval)
        except KeyboardInterrupt:
            self.stdout.write("Stopped")
