"""Election lifecycle engine.

Pure decisions only. Nothing in this module reads the database or the clock;
callers pass the current time in and apply the returned transition through
``elections_services.update_election_status``.
"""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass

from core.elections_exceptions import InvalidTransitionError
from core.models import Election

Status = Election.Status

TERMINAL_STATUSES: frozenset[str] = frozenset({Status.completed, Status.cancelled})


@dataclass(frozen=True)
class Transition:
    from_status: str
    to_status: str


# Every edge an election may ever take. Nothing leaves a terminal status.
ALLOWED_TRANSITIONS: frozenset[Transition] = frozenset(
    {
        Transition(Status.upcoming, Status.active),
        Transition(Status.active, Status.completed),
        Transition(Status.active, Status.paused),
        Transition(Status.paused, Status.active),
        Transition(Status.upcoming, Status.cancelled),
        Transition(Status.active, Status.cancelled),
        Transition(Status.paused, Status.cancelled),
    }
)

# The subset the wall clock may trigger without an administrator.
AUTOMATIC_TRANSITIONS: frozenset[Transition] = frozenset(
    {
        Transition(Status.upcoming, Status.active),
        Transition(Status.active, Status.completed),
    }
)


class AdminCommand(enum.StrEnum):
    start = "start"
    pause = "pause"
    resume = "resume"
    complete = "complete"
    cancel = "cancel"


_ADMIN_COMMAND_TARGETS: dict[AdminCommand, dict[str, str]] = {
    AdminCommand.start: {Status.upcoming: Status.active},
    AdminCommand.pause: {Status.active: Status.paused},
    AdminCommand.resume: {Status.paused: Status.active},
    AdminCommand.complete: {Status.active: Status.completed},
    AdminCommand.cancel: {
        Status.upcoming: Status.cancelled,
        Status.active: Status.cancelled,
        Status.paused: Status.cancelled,
    },
}


def decide(
    status: str,
    start_datetime: datetime.datetime,
    end_datetime: datetime.datetime,
    now: datetime.datetime,
) -> Transition | None:
    """Return the automatic transition due at ``now``, if any.

    A paused election is never auto-activated even when its start has passed;
    only an explicit resume moves it back to active. Terminal elections never
    yield a transition.
    """
    if status not in Status.values:
        raise ValueError(f"unknown election status {status!r}")

    if status == Status.upcoming and now >= start_datetime:
        return Transition(Status.upcoming, Status.active)
    if status == Status.active and now >= end_datetime:
        return Transition(Status.active, Status.completed)
    return None


def is_allowed(from_status: str, to_status: str) -> bool:
    return Transition(from_status, to_status) in ALLOWED_TRANSITIONS


def is_automatic(transition: Transition) -> bool:
    return transition in AUTOMATIC_TRANSITIONS


def admin_transition(command: str, status: str) -> Transition:
    """Map an administrator command issued against ``status`` to its transition."""
    try:
        admin_command = AdminCommand(str(command or "").strip().lower())
    except ValueError as exc:
        raise InvalidTransitionError(f"Unknown election command: {command!r}.") from exc

    target = _ADMIN_COMMAND_TARGETS[admin_command].get(status)
    if target is None:
        if status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Election is {status}; it can no longer change status.")
        raise InvalidTransitionError(f"Cannot {admin_command} an election that is {status}.")
    return Transition(status, target)
