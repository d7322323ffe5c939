"""Drivers that apply the lifecycle engine's decisions.

Any number of drivers may run at once (the background command plus every web
worker). They never coordinate: the conditional update in
``update_election_status`` picks a single winner per transition and everyone
else sees ``StaleTransitionError``, which is expected and absorbed here.
"""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from django.utils import timezone

from core.elections_exceptions import StaleTransitionError, StoreUnavailableError, UnknownEntityError
from core.elections_lifecycle import decide
from core.elections_services import lifecycle_snapshot, update_election_status

logger = logging.getLogger(__name__)

# An election moves at most upcoming -> active -> completed within one tick.
_MAX_STEPS_PER_ELECTION = 2


@dataclass
class TickSummary:
    checked: int = 0
    applied: int = 0
    stale: int = 0
    failed: int = 0
    skipped: int = 0
    transitions: list[tuple[int, str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "checked": self.checked,
            "applied": self.applied,
            "stale": self.stale,
            "failed": self.failed,
            "skipped": self.skipped,
            "transitions": [
                {"election_id": election_id, "from": from_status, "to": to_status}
                for election_id, from_status, to_status in self.transitions
            ],
        }


class LifecycleDriver:
    def __init__(
        self,
        *,
        name: str = "driver",
        clock: Callable[[], datetime.datetime] = timezone.now,
    ) -> None:
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        # (election_id, to_status, status_version) already tried. A new status
        # version means someone changed the election, so the key naturally expires.
        self._attempted: set[tuple[int, str, int]] = set()

    def tick(self) -> TickSummary:
        """Evaluate every non-terminal election once and apply what is due.

        Raises StoreUnavailableError when the snapshot cannot be read at all;
        callers back off until their next tick.
        """
        with self._lock:
            return self._tick()

    def _tick(self) -> TickSummary:
        summary = TickSummary()
        now = self._clock()
        snapshot = lifecycle_snapshot()

        live_keys = {(row.election_id, row.status_version) for row in snapshot}
        self._attempted = {key for key in self._attempted if (key[0], key[2]) in live_keys}

        for row in snapshot:
            summary.checked += 1
            status = row.status
            version = row.status_version

            for _ in range(_MAX_STEPS_PER_ELECTION):
                transition = decide(status, row.start_datetime, row.end_datetime, now)
                if transition is None:
                    break

                key = (row.election_id, transition.to_status, version)
                if key in self._attempted:
                    summary.skipped += 1
                    break
                self._attempted.add(key)

                try:
                    election = update_election_status(
                        row.election_id,
                        transition.from_status,
                        transition.to_status,
                        actor=self.name,
                        automatic=True,
                    )
                except StaleTransitionError:
                    summary.stale += 1
                    break
                except UnknownEntityError:
                    # Deleted between the snapshot and the update.
                    summary.skipped += 1
                    break
                except StoreUnavailableError:
                    self._attempted.discard(key)
                    summary.failed += 1
                    break

                summary.applied += 1
                summary.transitions.append((row.election_id, transition.from_status, transition.to_status))
                status = election.status
                version = election.status_version

        if summary.applied or summary.failed:
            logger.info(
                "election_lifecycle_tick driver=%s checked=%s applied=%s stale=%s failed=%s",
                self.name,
                summary.checked,
                summary.applied,
                summary.stale,
                summary.failed,
            )
        return summary


_web_driver: LifecycleDriver | None = None
_web_driver_lock = threading.Lock()


def get_web_driver() -> LifecycleDriver:
    """The per-process driver used by web workers to trigger due transitions."""
    global _web_driver
    with _web_driver_lock:
        if _web_driver is None:
            _web_driver = LifecycleDriver(name="web")
        return _web_driver
