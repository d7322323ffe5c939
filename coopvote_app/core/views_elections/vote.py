"""Election voting: vote and abstain submission, vote history."""

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from core import elections_services
from core.elections_services import ElectionError, VoteReceipt
from core.permissions import ELECTION_MANAGE, json_login_required, json_permission_required
from core.views_elections._helpers import (
    PayloadError,
    _bad_request,
    _error_response,
    _request_data,
    _require_int,
    _serialize_vote,
)


def _receipt_response(receipt: VoteReceipt) -> JsonResponse:
    vote = receipt.vote
    return JsonResponse(
        {
            "ok": True,
            "receipt": receipt.receipt,
            "vote": {
                "election_id": vote.election_id,
                "position_id": vote.position_id,
                "candidate_id": vote.candidate_id,
                "is_abstain": vote.is_abstain,
            },
        },
        status=201,
    )


@require_POST
@json_login_required
def election_vote_submit(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        candidate_id = _require_int(_request_data(request), "candidate_id")
    except PayloadError as exc:
        return _bad_request(str(exc))

    try:
        receipt = elections_services.cast_vote(request.user.pk, election_id, candidate_id)
    except ElectionError as exc:
        return _error_response(exc)
    return _receipt_response(receipt)


@require_POST
@json_login_required
def election_abstain_submit(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        position_id = _require_int(_request_data(request), "position_id")
    except PayloadError as exc:
        return _bad_request(str(exc))

    try:
        receipt = elections_services.cast_abstain_vote(request.user.pk, election_id, position_id)
    except ElectionError as exc:
        return _error_response(exc)
    return _receipt_response(receipt)


@require_GET
@json_login_required
def my_votes(request: HttpRequest) -> JsonResponse:
    try:
        votes = elections_services.list_votes(user_id=request.user.pk)
    except ElectionError as exc:
        return _error_response(exc)
    return JsonResponse({"ok": True, "votes": [_serialize_vote(v) for v in votes]})


@require_GET
@json_permission_required(ELECTION_MANAGE)
def election_votes(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        election = elections_services.get_election(election_id)
        votes = elections_services.list_votes(election_id=election.id)
    except ElectionError as exc:
        return _error_response(exc)
    return JsonResponse(
        {
            "ok": True,
            "election_id": election.id,
            "votes": [_serialize_vote(v, include_user=True) for v in votes],
        }
    )
