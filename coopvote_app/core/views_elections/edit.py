"""Administrator edits: elections, positions, and candidates."""

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_POST

from core import elections_services
from core.elections_services import ElectionError
from core.permissions import ELECTION_MANAGE, json_permission_required
from core.views_elections._helpers import (
    PayloadError,
    _actor,
    _bad_request,
    _error_response,
    _optional_bool,
    _optional_datetime,
    _optional_int,
    _request_data,
    _serialize_candidate,
    _serialize_election,
    _serialize_position,
)

logger = logging.getLogger(__name__)


@require_POST
@json_permission_required(ELECTION_MANAGE)
def election_create(request: HttpRequest) -> JsonResponse:
    try:
        data = _request_data(request)
        start_datetime = _optional_datetime(data, "start_datetime")
        end_datetime = _optional_datetime(data, "end_datetime")
        parent_election_id = _optional_int(data, "parent_election_id")
        results_public = _optional_bool(data, "results_public")
    except PayloadError as exc:
        return _bad_request(str(exc))
    if start_datetime is None or end_datetime is None:
        return _bad_request("start_datetime and end_datetime are required")

    try:
        election = elections_services.create_election(
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            start_datetime=start_datetime,
            end_datetime=end_datetime,
            results_public=True if results_public is None else results_public,
            parent_election_id=parent_election_id,
            created_by_id=request.user.pk,
        )
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse({"ok": True, "election": _serialize_election(election)}, status=201)


@require_POST
@json_permission_required(ELECTION_MANAGE)
def election_edit(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        data = _request_data(request)
        changes: dict[str, object] = {
            "title": data.get("title"),
            "description": data.get("description"),
            "start_datetime": _optional_datetime(data, "start_datetime"),
            "end_datetime": _optional_datetime(data, "end_datetime"),
            "results_public": _optional_bool(data, "results_public"),
        }
    except PayloadError as exc:
        return _bad_request(str(exc))

    if "status" in data:
        return _bad_request("Status changes go through the status endpoint.")

    try:
        election = elections_services.update_election_details(
            election_id,
            actor=_actor(request) or None,
            **{key: value for key, value in changes.items() if value is not None},
        )
    except ElectionError as exc:
        return _error_response(exc)

    logger.info("election_edited election_id=%s actor=%s", election.id, _actor(request))
    return JsonResponse({"ok": True, "election": _serialize_election(election)})


@require_POST
@json_permission_required(ELECTION_MANAGE)
def position_create(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        data = _request_data(request)
        max_votes = _optional_int(data, "max_votes")
        order = _optional_int(data, "order")
    except PayloadError as exc:
        return _bad_request(str(exc))

    try:
        position = elections_services.create_position(
            election_id=election_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            max_votes=1 if max_votes is None else max_votes,
            order=0 if order is None else order,
        )
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse({"ok": True, "position": _serialize_position(position, candidates=[])}, status=201)


@require_POST
@json_permission_required(ELECTION_MANAGE)
def position_edit(request: HttpRequest, position_id: int) -> JsonResponse:
    try:
        data = _request_data(request)
        max_votes = _optional_int(data, "max_votes")
        order = _optional_int(data, "order")
    except PayloadError as exc:
        return _bad_request(str(exc))

    title = data.get("title")
    description = data.get("description")
    try:
        position = elections_services.update_position(
            position_id,
            title=None if title is None else str(title),
            description=None if description is None else str(description),
            order=order,
            max_votes=max_votes,
        )
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse(
        {"ok": True, "position": _serialize_position(position, candidates=list(position.candidates.all()))}
    )


@require_POST
@json_permission_required(ELECTION_MANAGE)
def candidate_create(request: HttpRequest, position_id: int) -> JsonResponse:
    try:
        data = _request_data(request)
    except PayloadError as exc:
        return _bad_request(str(exc))

    try:
        candidate = elections_services.create_candidate(
            position_id=position_id,
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            photo_url=str(data.get("photo_url") or ""),
        )
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse({"ok": True, "candidate": _serialize_candidate(candidate)}, status=201)


@require_POST
@json_permission_required(ELECTION_MANAGE)
def position_delete(request: HttpRequest, position_id: int) -> JsonResponse:
    try:
        elections_services.delete_position(position_id)
    except ElectionError as exc:
        return _error_response(exc)

    logger.info("position_deleted position_id=%s actor=%s", position_id, _actor(request))
    return JsonResponse({"ok": True})


@require_POST
@json_permission_required(ELECTION_MANAGE)
def candidate_edit(request: HttpRequest, candidate_id: int) -> JsonResponse:
    try:
        data = _request_data(request)
    except PayloadError as exc:
        return _bad_request(str(exc))

    name = data.get("name")
    description = data.get("description")
    photo_url = data.get("photo_url")
    try:
        candidate = elections_services.update_candidate(
            candidate_id,
            name=None if name is None else str(name),
            description=None if description is None else str(description),
            photo_url=None if photo_url is None else str(photo_url),
        )
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse({"ok": True, "candidate": _serialize_candidate(candidate)})


@require_POST
@json_permission_required(ELECTION_MANAGE)
def candidate_delete(request: HttpRequest, candidate_id: int) -> JsonResponse:
    try:
        elections_services.delete_candidate(candidate_id)
    except ElectionError as exc:
        return _error_response(exc)

    logger.info("candidate_deleted candidate_id=%s actor=%s", candidate_id, _actor(request))
    return JsonResponse({"ok": True})
