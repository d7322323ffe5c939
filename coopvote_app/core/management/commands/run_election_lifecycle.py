import logging
import time
from typing import override

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import close_old_connections

from core.elections_driver import LifecycleDriver, TickSummary
from core.elections_services import StoreUnavailableError

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = (
        "Apply due election status transitions (upcoming -> active, active -> completed) "
        "on a timer. Safe to run alongside web workers and other copies of itself."
    )

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single tick and exit.",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=None,
            help="Seconds between ticks (default: ELECTION_LIFECYCLE_POLL_INTERVAL_SECONDS).",
        )

    @override
    def handle(self, *args, **options) -> None:
        once: bool = bool(options.get("once"))
        interval = options.get("interval")
        if interval is None:
            interval = int(settings.ELECTION_LIFECYCLE_POLL_INTERVAL_SECONDS)
        if interval <= 0:
            raise CommandError("--interval must be a positive number of seconds")

        driver = LifecycleDriver(name="lifecycle-command")

        while True:
            self._run_tick(driver)
            if once:
                return
            time.sleep(interval)

    def _run_tick(self, driver: LifecycleDriver) -> None:
        # Outside the request cycle nothing else drops a connection the server has closed.
        close_old_connections()
        try:
            summary = driver.tick()
        except StoreUnavailableError:
            logger.warning("election_lifecycle_tick_skipped reason=store_unavailable")
            self.stdout.write("Election store unavailable; waiting for the next tick.")
            return

        self.stdout.write(self._format_summary(summary))

    def _format_summary(self, summary: TickSummary) -> str:
        line = (
            f"checked={summary.checked} applied={summary.applied} "
            f"stale={summary.stale} failed={summary.failed}"
        )
        for election_id, from_status, to_status in summary.transitions:
            line += f"\n  election {election_id}: {from_status} -> {to_status}"
        return line
