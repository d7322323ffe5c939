"""Shared private helpers used across election view sub-modules."""

import datetime
import json

from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.elections_services import (
    DuplicatePositionVoteError,
    ElectionError,
    ElectionFrozenError,
    ElectionNotActiveError,
    StaleTransitionError,
    StoreUnavailableError,
    UnknownEntityError,
)
from core.models import Candidate, Election, Position, Vote

_ERROR_STATUS: tuple[tuple[type[ElectionError], int], ...] = (
    (UnknownEntityError, 404),
    (DuplicatePositionVoteError, 409),
    (StaleTransitionError, 409),
    (ElectionNotActiveError, 409),
    (ElectionFrozenError, 409),
    (StoreUnavailableError, 503),
)


class PayloadError(ValueError):
    """Raised when a request body is missing a field or carries a malformed one."""


def _request_data(request: HttpRequest) -> dict[str, object]:
    if request.content_type and request.content_type.startswith("application/json"):
        try:
            raw = request.body.decode("utf-8") if request.body else "{}"
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PayloadError("Request body is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise PayloadError("Request body must be a JSON object.")
        return data
    return {key: request.POST.get(key) for key in request.POST}


def _require_int(data: dict[str, object], key: str) -> int:
    raw = data.get(key)
    if raw is None or raw == "":
        raise PayloadError(f"{key} is required")
    # JSON floats and booleans are refused rather than truncated into a different id.
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.isascii() and stripped.isdigit():
            return int(stripped)
    raise PayloadError(f"{key} must be an integer")


def _optional_int(data: dict[str, object], key: str) -> int | None:
    if data.get(key) in (None, ""):
        return None
    return _require_int(data, key)


def _optional_datetime(data: dict[str, object], key: str) -> datetime.datetime | None:
    raw = data.get(key)
    if raw in (None, ""):
        return None
    try:
        value = parse_datetime(str(raw))
    except ValueError as exc:
        raise PayloadError(f"{key} must be an ISO 8601 datetime") from exc
    if value is None:
        raise PayloadError(f"{key} must be an ISO 8601 datetime")
    if timezone.is_naive(value):
        value = timezone.make_aware(value, datetime.UTC)
    return value


def _optional_bool(data: dict[str, object], key: str) -> bool | None:
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _error_response(exc: ElectionError) -> JsonResponse:
    status = 400
    for error_type, error_status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status = error_status
            break

    payload: dict[str, object] = {
        "ok": False,
        "error": str(exc),
        "code": exc.code,
        "retryable": exc.retryable,
    }
    if isinstance(exc, StaleTransitionError):
        payload["current_status"] = exc.current_status
    if isinstance(exc, ElectionNotActiveError):
        payload["status"] = exc.status
    return JsonResponse(payload, status=status)


def _bad_request(message: str) -> JsonResponse:
    return JsonResponse({"ok": False, "error": message, "code": "invalid", "retryable": False}, status=400)


def _serialize_election(election: Election, *, has_voted: bool | None = None) -> dict[str, object]:
    data: dict[str, object] = {
        "id": election.id,
        "title": election.title,
        "description": election.description,
        "start_datetime": election.start_datetime.isoformat(),
        "end_datetime": election.end_datetime.isoformat(),
        "status": election.status,
        "status_version": election.status_version,
        "results_public": election.results_public,
        "parent_election_id": election.parent_election_id,
    }
    if has_voted is not None:
        data["has_voted"] = has_voted
    return data


def _serialize_position(position: Position, *, candidates: list[Candidate]) -> dict[str, object]:
    return {
        "id": position.id,
        "title": position.title,
        "description": position.description,
        "max_votes": position.max_votes,
        "order": position.order,
        "candidates": [_serialize_candidate(c) for c in candidates],
    }


def _serialize_candidate(candidate: Candidate) -> dict[str, object]:
    return {
        "id": candidate.id,
        "position_id": candidate.position_id,
        "name": candidate.name,
        "description": candidate.description,
        "photo_url": candidate.photo_url,
    }


def _serialize_vote(vote: Vote, *, include_user: bool = False) -> dict[str, object]:
    data: dict[str, object] = {
        "id": vote.id,
        "election_id": vote.election_id,
        "election_title": vote.election.title,
        "position_id": vote.position_id,
        "position_title": vote.position.title,
        "candidate_id": vote.candidate_id,
        "candidate_name": vote.candidate.name if vote.candidate is not None else None,
        "is_abstain": vote.is_abstain,
        "receipt": vote.receipt,
        "created_at": vote.created_at.isoformat(),
    }
    if include_user:
        data["user_id"] = vote.user_id
    return data


def _actor(request: HttpRequest) -> str:
    return str(request.user.get_username() or "")
