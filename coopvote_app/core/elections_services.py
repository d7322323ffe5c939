from __future__ import annotations

import datetime
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import ParamSpec, TypeVar

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.db.models import Count, F
from django.utils import timezone

from core.elections_exceptions import (
    DuplicatePositionVoteError,
    ElectionError,
    ElectionFrozenError,
    ElectionNotActiveError,
    ElectionValidationError,
    InvalidTransitionError,
    StaleTransitionError,
    StoreUnavailableError,
    UnknownEntityError,
)
from core.elections_lifecycle import (
    TERMINAL_STATUSES,
    Transition,
    admin_transition,
    is_allowed,
    is_automatic,
)
from core.elections_signals import election_status_changed
from core.models import AuditLogEntry, Candidate, Election, Position, Vote

logger = logging.getLogger(__name__)

__all__ = [
    "DuplicatePositionVoteError",
    "ElectionError",
    "ElectionFrozenError",
    "ElectionLifecycleState",
    "ElectionNotActiveError",
    "ElectionValidationError",
    "InvalidTransitionError",
    "StaleTransitionError",
    "StoreUnavailableError",
    "UnknownEntityError",
    "VoteReceipt",
    "apply_admin_command",
    "cast_abstain_vote",
    "cast_vote",
    "create_candidate",
    "create_election",
    "create_position",
    "current_active_election",
    "election_ballot",
    "delete_candidate",
    "delete_position",
    "election_results",
    "get_election",
    "has_voted",
    "lifecycle_snapshot",
    "list_elections",
    "list_votes",
    "update_candidate",
    "update_election_details",
    "update_election_status",
    "update_position",
    "voted_election_ids",
]

P = ParamSpec("P")
R = TypeVar("R")

DUPLICATE_POSITION_VOTE_MESSAGE = "You have already voted for this position."


def _translate_store_errors(func: Callable[P, R]) -> Callable[P, R]:
    """Surface lost database connectivity as a retryable StoreUnavailableError."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            logger.warning("election_store_unavailable operation=%s error=%s", func.__name__, exc)
            raise StoreUnavailableError(
                "The election store is temporarily unavailable. Please try again shortly."
            ) from exc

    return wrapper


def _validation_message(exc: ValidationError) -> str:
    if hasattr(exc, "error_dict"):
        parts = []
        for field, errors in exc.message_dict.items():
            label = "" if field == "__all__" else f"{field}: "
            parts.extend(f"{label}{msg}" for msg in errors)
        return " ".join(parts)
    return " ".join(exc.messages)


@dataclass(frozen=True)
class VoteReceipt:
    vote: Vote

    @property
    def receipt(self) -> str:
        return self.vote.receipt


@dataclass(frozen=True)
class ElectionLifecycleState:
    election_id: int
    status: str
    status_version: int
    start_datetime: datetime.datetime
    end_datetime: datetime.datetime


@_translate_store_errors
def list_elections(
    *,
    top_level_only: bool = True,
    parent_election_id: int | None = None,
) -> list[Election]:
    qs = Election.objects.all()
    if parent_election_id is not None:
        qs = qs.filter(parent_election_id=parent_election_id).order_by("start_datetime", "id")
    elif top_level_only:
        qs = qs.top_level()
    return list(qs)


@_translate_store_errors
def election_ballot(election_id: int) -> list[tuple[Position, list[Candidate]]]:
    """Positions in display order, each paired with its candidates."""
    candidates_by_position: dict[int, list[Candidate]] = {}
    for candidate in Candidate.objects.filter(election_id=election_id).order_by("name", "id"):
        candidates_by_position.setdefault(candidate.position_id, []).append(candidate)
    return [
        (position, candidates_by_position.get(position.id, []))
        for position in Position.objects.filter(election_id=election_id).order_by("order", "id")
    ]


@_translate_store_errors
def get_election(election_id: int) -> Election:
    election = Election.objects.filter(pk=election_id).first()
    if election is None:
        raise UnknownEntityError("election", election_id)
    return election


@_translate_store_errors
def lifecycle_snapshot() -> list[ElectionLifecycleState]:
    """Read the state every driver needs to evaluate the lifecycle engine."""
    rows = (
        Election.objects.non_terminal()
        .order_by("start_datetime", "id")
        .values_list("id", "status", "status_version", "start_datetime", "end_datetime")
    )
    return [
        ElectionLifecycleState(
            election_id=election_id,
            status=status,
            status_version=status_version,
            start_datetime=start_datetime,
            end_datetime=end_datetime,
        )
        for election_id, status, status_version, start_datetime, end_datetime in rows
    ]


@_translate_store_errors
def current_active_election() -> Election | None:
    """The most recently started active top-level election, for single-election dashboards."""
    return (
        Election.objects.top_level()
        .filter(status=Election.Status.active)
        .order_by("-start_datetime", "-id")
        .first()
    )


@_translate_store_errors
@transaction.atomic
def create_election(
    *,
    title: str,
    start_datetime: datetime.datetime,
    end_datetime: datetime.datetime,
    description: str = "",
    results_public: bool = True,
    parent_election_id: int | None = None,
    created_by_id: int | None = None,
) -> Election:
    if parent_election_id is not None and not Election.objects.filter(pk=parent_election_id).exists():
        raise UnknownEntityError("election", parent_election_id, "Parent election not found.")

    # New elections always start upcoming; activation is the lifecycle drivers' job.
    election = Election(
        title=str(title or "").strip(),
        description=str(description or ""),
        start_datetime=start_datetime,
        end_datetime=end_datetime,
        results_public=bool(results_public),
        parent_election_id=parent_election_id,
        created_by_id=created_by_id,
        status=Election.Status.upcoming,
    )
    _validate_election(election)
    election.save()

    AuditLogEntry.objects.create(
        election=election,
        event_type="election_created",
        payload={
            "title": election.title,
            "start_datetime": election.start_datetime.isoformat(),
            "end_datetime": election.end_datetime.isoformat(),
        },
        is_public=True,
    )
    logger.info("election_created election_id=%s parent_election_id=%s", election.id, parent_election_id)
    return election


def _validate_election(election: Election) -> None:
    if election.start_datetime and election.end_datetime and election.end_datetime <= election.start_datetime:
        raise ElectionValidationError("End datetime must be later than the start datetime.")
    try:
        election.full_clean(exclude=["created_by", "parent_election"])
    except ValidationError as exc:
        raise ElectionValidationError(_validation_message(exc)) from exc


_EDITABLE_ELECTION_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "start_datetime",
    "end_datetime",
    "results_public",
)


@_translate_store_errors
@transaction.atomic
def update_election_details(
    election_id: int,
    *,
    actor: str | None = None,
    **changes: object,
) -> Election:
    """Apply administrator field edits. Status is never written here."""
    unknown = sorted(set(changes) - set(_EDITABLE_ELECTION_FIELDS))
    if unknown:
        raise ElectionValidationError(f"Fields cannot be edited: {', '.join(unknown)}.")

    locked = Election.objects.select_for_update().filter(pk=election_id).first()
    if locked is None:
        raise UnknownEntityError("election", election_id)
    if locked.status in TERMINAL_STATUSES:
        raise ElectionFrozenError(f"Election is {locked.status}; its details can no longer be edited.")

    changed: list[str] = []
    for field in _EDITABLE_ELECTION_FIELDS:
        if field not in changes or changes[field] is None:
            continue
        value = changes[field]
        if field == "title":
            value = str(value).strip()
        if getattr(locked, field) != value:
            setattr(locked, field, value)
            changed.append(field)

    if not changed:
        return locked

    _validate_election(locked)
    # update_fields keeps a concurrent conditional status update from being overwritten.
    locked.save(update_fields=[*changed, "updated_at"])

    payload: dict[str, object] = {"fields": changed}
    if actor:
        payload["actor"] = actor
    AuditLogEntry.objects.create(
        election=locked,
        event_type="election_updated",
        payload=payload,
        is_public=False,
    )
    return locked


@_translate_store_errors
@transaction.atomic
def update_election_status(
    election_id: int,
    expected_from: str,
    to: str,
    *,
    actor: str | None = None,
    automatic: bool = False,
) -> Election:
    """Conditionally move an election from ``expected_from`` to ``to``.

    The write only lands if the stored status still equals ``expected_from``;
    of any number of racing callers exactly one succeeds and the rest get
    StaleTransitionError. ``election_status_changed`` is sent only from the
    successful branch, so it fires once per genuine transition.
    """
    transition = Transition(expected_from, to)
    if not is_allowed(expected_from, to):
        raise InvalidTransitionError(f"Elections cannot move from {expected_from} to {to}.")
    if automatic and not is_automatic(transition):
        raise InvalidTransitionError(f"The {expected_from} to {to} transition requires an administrator.")

    now = timezone.now()
    updated = Election.objects.filter(pk=election_id, status=expected_from).update(
        status=to,
        status_version=F("status_version") + 1,
        status_changed_at=now,
        updated_at=now,
    )

    if updated == 0:
        current_status = Election.objects.filter(pk=election_id).values_list("status", flat=True).first()
        if current_status is None:
            raise UnknownEntityError("election", election_id)
        logger.info(
            "election_transition_stale election_id=%s expected_from=%s to=%s current=%s automatic=%s",
            election_id,
            expected_from,
            to,
            current_status,
            automatic,
        )
        raise StaleTransitionError(
            f"Election is now {current_status}, not {expected_from}.",
            election_id=election_id,
            expected_from=expected_from,
            current_status=current_status,
        )

    election = Election.objects.get(pk=election_id)
    logger.info(
        "election_transition_applied election_id=%s from=%s to=%s version=%s actor=%s automatic=%s",
        election_id,
        expected_from,
        to,
        election.status_version,
        actor or "",
        automatic,
    )

    responses = election_status_changed.send_robust(
        sender=Election,
        election=election,
        from_status=expected_from,
        to_status=to,
        actor=actor,
        automatic=automatic,
    )
    for receiver, result in responses:
        if isinstance(result, Exception):
            logger.error(
                "election_transition_receiver_failed election_id=%s receiver=%s",
                election_id,
                getattr(receiver, "__qualname__", repr(receiver)),
                exc_info=result,
            )

    return election


def apply_admin_command(
    election_id: int,
    command: str,
    expected_from: str,
    *,
    actor: str | None = None,
) -> Election:
    """Apply pause/resume/cancel/start/complete against the status the admin saw."""
    transition = admin_transition(command, expected_from)
    return update_election_status(
        election_id,
        transition.from_status,
        transition.to_status,
        actor=actor,
        automatic=False,
    )


@_translate_store_errors
@transaction.atomic
def create_position(
    *,
    election_id: int,
    title: str,
    description: str = "",
    max_votes: int = 1,
    order: int = 0,
) -> Position:
    election = Election.objects.select_for_update().filter(pk=election_id).first()
    if election is None:
        raise UnknownEntityError("election", election_id)
    if election.status in TERMINAL_STATUSES:
        raise ElectionFrozenError(f"Cannot add positions to an election that is {election.status}.")

    position = Position(
        election=election,
        title=str(title or "").strip(),
        description=str(description or ""),
        max_votes=max_votes,
        order=order,
    )
    try:
        position.full_clean()
    except ValidationError as exc:
        raise ElectionValidationError(_validation_message(exc)) from exc
    position.save()
    return position


@_translate_store_errors
@transaction.atomic
def update_position(
    position_id: int,
    *,
    title: str | None = None,
    description: str | None = None,
    order: int | None = None,
    max_votes: int | None = None,
) -> Position:
    """Edit a position. Once votes reference it only relabeling is allowed."""
    position = Position.objects.select_for_update().filter(pk=position_id).first()
    if position is None:
        raise UnknownEntityError("position", position_id)

    changed: list[str] = []
    if max_votes is not None and max_votes != position.max_votes:
        if Vote.objects.filter(position_id=position.id).exists():
            raise ElectionFrozenError("Votes have been cast for this position; only its labels can change.")
        position.max_votes = max_votes
        changed.append("max_votes")
    if title is not None and title.strip() != position.title:
        position.title = title.strip()
        changed.append("title")
    if description is not None and description != position.description:
        position.description = description
        changed.append("description")
    if order is not None and order != position.order:
        position.order = order
        changed.append("order")

    if changed:
        try:
            position.full_clean()
        except ValidationError as exc:
            raise ElectionValidationError(_validation_message(exc)) from exc
        position.save(update_fields=changed)
    return position


@_translate_store_errors
@transaction.atomic
def create_candidate(
    *,
    position_id: int,
    name: str,
    description: str = "",
    photo_url: str = "",
) -> Candidate:
    position = Position.objects.filter(pk=position_id).first()
    if position is None:
        raise UnknownEntityError("position", position_id)

    # Lock the election row so the freeze check cannot interleave with activation.
    election = Election.objects.select_for_update().only("id", "status").get(pk=position.election_id)
    if election.status != Election.Status.upcoming:
        raise ElectionFrozenError("Candidates are frozen once an election has started.")

    candidate = Candidate(
        election_id=election.id,
        position=position,
        name=str(name or "").strip(),
        description=str(description or ""),
        photo_url=str(photo_url or "").strip(),
    )
    try:
        candidate.full_clean()
    except ValidationError as exc:
        raise ElectionValidationError(_validation_message(exc)) from exc
    candidate.save()
    return candidate


def _lock_upcoming_election(election_id: int, message: str) -> Election:
    election = Election.objects.select_for_update().only("id", "status").get(pk=election_id)
    if election.status != Election.Status.upcoming:
        raise ElectionFrozenError(message)
    return election


@_translate_store_errors
@transaction.atomic
def update_candidate(
    candidate_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    photo_url: str | None = None,
) -> Candidate:
    candidate = Candidate.objects.filter(pk=candidate_id).first()
    if candidate is None:
        raise UnknownEntityError("candidate", candidate_id)
    _lock_upcoming_election(candidate.election_id, "Candidates are frozen once an election has started.")

    changed: list[str] = []
    if name is not None and name.strip() != candidate.name:
        candidate.name = name.strip()
        changed.append("name")
    if description is not None and description != candidate.description:
        candidate.description = description
        changed.append("description")
    if photo_url is not None and photo_url.strip() != candidate.photo_url:
        candidate.photo_url = photo_url.strip()
        changed.append("photo_url")

    if changed:
        try:
            candidate.full_clean()
        except ValidationError as exc:
            raise ElectionValidationError(_validation_message(exc)) from exc
        candidate.save(update_fields=changed)
    return candidate


@_translate_store_errors
@transaction.atomic
def delete_candidate(candidate_id: int) -> None:
    candidate = Candidate.objects.filter(pk=candidate_id).first()
    if candidate is None:
        raise UnknownEntityError("candidate", candidate_id)
    _lock_upcoming_election(candidate.election_id, "Candidates are frozen once an election has started.")
    if Vote.objects.filter(candidate_id=candidate.id).exists():
        raise ElectionFrozenError("Votes have been cast for this candidate; it cannot be deleted.")

    candidate.delete()
    logger.info("candidate_deleted candidate_id=%s election_id=%s", candidate_id, candidate.election_id)


@_translate_store_errors
@transaction.atomic
def delete_position(position_id: int) -> None:
    """Remove a position and its candidates while the election has not started."""
    position = Position.objects.filter(pk=position_id).first()
    if position is None:
        raise UnknownEntityError("position", position_id)
    _lock_upcoming_election(position.election_id, "Positions are frozen once an election has started.")
    # Vote rows are never removed here; PROTECT would refuse the delete anyway.
    if Vote.objects.filter(position_id=position.id).exists():
        raise ElectionFrozenError("Votes have been cast for this position; it cannot be deleted.")

    position.delete()
    logger.info("position_deleted position_id=%s election_id=%s", position_id, position.election_id)


def _load_active_election(election_id: int) -> Election:
    # Always re-read: a status cached by the caller may be stale.
    election = Election.objects.only("id", "status", "title").filter(pk=election_id).first()
    if election is None:
        raise UnknownEntityError("election", election_id)
    if election.status != Election.Status.active:
        raise ElectionNotActiveError(f"Election is not active (status: {election.status}).", status=election.status)
    return election


def _voted_position_ids(*, election_id: int, user_id: int) -> set[int]:
    return set(
        Vote.objects.for_election(election_id=election_id)
        .for_user(user_id=user_id)
        .values_list("position_id", flat=True)
    )


def _record_vote(
    *,
    user_id: int,
    election: Election,
    position_id: int,
    candidate_id: int | None,
) -> VoteReceipt:
    if not get_user_model().objects.filter(pk=user_id).exists():
        raise UnknownEntityError("user", user_id)

    # Fast path for the common non-racing case; the unique constraint below is the real guarantee.
    if position_id in _voted_position_ids(election_id=election.id, user_id=user_id):
        raise DuplicatePositionVoteError(DUPLICATE_POSITION_VOTE_MESSAGE)

    # The nonce keeps receipts unguessable from the vote contents; it is not stored.
    nonce = secrets.token_hex(16)
    receipt = Vote.compute_receipt(
        election_id=election.id,
        user_id=user_id,
        position_id=position_id,
        candidate_id=candidate_id,
        nonce=nonce,
    )

    try:
        with transaction.atomic():
            vote = Vote.objects.create(
                user_id=user_id,
                election=election,
                position_id=position_id,
                candidate_id=candidate_id,
                is_abstain=candidate_id is None,
                receipt=receipt,
            )
            AuditLogEntry.objects.create(
                election=election,
                event_type="vote_abstained" if candidate_id is None else "vote_cast",
                payload={"position_id": position_id, "receipt": receipt},
                is_public=False,
            )
    except IntegrityError as exc:
        if Vote.objects.filter(election=election, user_id=user_id, position_id=position_id).exists():
            logger.info(
                "vote_duplicate_rejected_by_store election_id=%s user_id=%s position_id=%s",
                election.id,
                user_id,
                position_id,
            )
            raise DuplicatePositionVoteError(DUPLICATE_POSITION_VOTE_MESSAGE) from exc
        raise

    logger.info(
        "vote_recorded election_id=%s position_id=%s abstain=%s",
        election.id,
        position_id,
        candidate_id is None,
    )
    return VoteReceipt(vote=vote)


@_translate_store_errors
def cast_vote(user_id: int, election_id: int, candidate_id: int) -> VoteReceipt:
    """Record one member's vote for one candidate.

    Each call covers exactly one position. Voting on several positions is
    several independent calls; a failure on one never affects the others.
    """
    election = _load_active_election(election_id)

    candidate = Candidate.objects.select_related("position").filter(pk=candidate_id).first()
    if candidate is None:
        raise UnknownEntityError("candidate", candidate_id)
    if candidate.election_id != election.id or candidate.position.election_id != election.id:
        raise UnknownEntityError("candidate", candidate_id, "Candidate does not belong to this election.")

    return _record_vote(
        user_id=user_id,
        election=election,
        position_id=candidate.position_id,
        candidate_id=candidate.id,
    )


@_translate_store_errors
def cast_abstain_vote(user_id: int, election_id: int, position_id: int) -> VoteReceipt:
    """Record an explicit abstention; it uses up the member's vote for that position."""
    election = _load_active_election(election_id)

    position = Position.objects.only("id", "election_id").filter(pk=position_id).first()
    if position is None:
        raise UnknownEntityError("position", position_id)
    if position.election_id != election.id:
        raise UnknownEntityError("position", position_id, "Position does not belong to this election.")

    return _record_vote(
        user_id=user_id,
        election=election,
        position_id=position.id,
        candidate_id=None,
    )


@_translate_store_errors
def list_votes(*, user_id: int | None = None, election_id: int | None = None) -> list[Vote]:
    qs = Vote.objects.select_related("election", "position", "candidate")
    if user_id is not None:
        qs = qs.for_user(user_id=user_id)
    if election_id is not None:
        qs = qs.for_election(election_id=election_id)
    return list(qs)


@_translate_store_errors
def has_voted(*, user_id: int, election_id: int) -> bool:
    """Reporting only; the per-position constraint is what gates voting."""
    return Vote.objects.filter(user_id=user_id, election_id=election_id).exists()


@_translate_store_errors
def voted_election_ids(*, user_id: int) -> set[int]:
    return set(Vote.objects.filter(user_id=user_id).values_list("election_id", flat=True).distinct())


@_translate_store_errors
def election_results(election_id: int) -> dict[str, object]:
    election = get_election(election_id)

    counts = {
        row["candidate_id"]: row["votes"]
        for row in Vote.objects.filter(election_id=election.id, is_abstain=False)
        .values("candidate_id")
        .annotate(votes=Count("id"))
    }
    abstentions = {
        row["position_id"]: row["votes"]
        for row in Vote.objects.filter(election_id=election.id, is_abstain=True)
        .values("position_id")
        .annotate(votes=Count("id"))
    }

    candidates_by_position: dict[int, list[Candidate]] = {}
    for candidate in Candidate.objects.filter(election_id=election.id).only("id", "name", "position_id"):
        candidates_by_position.setdefault(candidate.position_id, []).append(candidate)

    positions_payload: list[dict[str, object]] = []
    for position in Position.objects.filter(election_id=election.id).order_by("order", "id"):
        candidate_rows = [
            {"candidate_id": c.id, "name": c.name, "votes": int(counts.get(c.id, 0))}
            for c in candidates_by_position.get(position.id, [])
        ]
        total = sum(int(row["votes"]) for row in candidate_rows)
        for row in candidate_rows:
            row["percentage"] = round(int(row["votes"]) * 100 / total) if total else 0
        candidate_rows.sort(key=lambda row: (-int(row["votes"]), str(row["name"])))

        positions_payload.append(
            {
                "position_id": position.id,
                "title": position.title,
                "total_votes": total,
                "abstentions": int(abstentions.get(position.id, 0)),
                "candidates": candidate_rows,
            }
        )

    return {
        "election_id": election.id,
        "status": election.status,
        "total_votes": Vote.objects.filter(election_id=election.id).count(),
        "voters": Vote.objects.filter(election_id=election.id).values("user_id").distinct().count(),
        "positions": positions_payload,
    }
