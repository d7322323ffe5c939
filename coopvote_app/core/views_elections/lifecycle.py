"""Election lifecycle actions: driver ticks and administrator status commands."""

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_POST

from core import elections_services
from core.elections_driver import get_web_driver
from core.elections_services import ElectionError, StoreUnavailableError
from core.permissions import ELECTION_MANAGE, json_login_required, json_permission_required
from core.views_elections._helpers import (
    PayloadError,
    _actor,
    _bad_request,
    _error_response,
    _request_data,
    _serialize_election,
)

logger = logging.getLogger(__name__)


@require_POST
@json_login_required
def elections_tick(request: HttpRequest) -> JsonResponse:
    """Let any signed-in client nudge due transitions between background ticks."""
    try:
        summary = get_web_driver().tick()
    except StoreUnavailableError as exc:
        return _error_response(exc)
    return JsonResponse({"ok": True, "tick": summary.as_dict()})


@require_POST
@json_permission_required(ELECTION_MANAGE)
def election_status_command(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        data = _request_data(request)
    except PayloadError as exc:
        return _bad_request(str(exc))

    command = str(data.get("command") or "").strip()
    expected_from = str(data.get("expected_from") or "").strip()
    if not command:
        return _bad_request("command is required")
    if not expected_from:
        return _bad_request("expected_from is required")

    try:
        election = elections_services.apply_admin_command(
            election_id,
            command,
            expected_from,
            actor=_actor(request) or None,
        )
    except ElectionError as exc:
        return _error_response(exc)

    logger.info(
        "election_admin_command election_id=%s command=%s actor=%s status=%s",
        election.id,
        command,
        _actor(request),
        election.status,
    )
    return JsonResponse({"ok": True, "election": _serialize_election(election)})
