"""Election read views: listing, detail, and results."""

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from core import elections_services
from core.elections_services import ElectionError
from core.models import Election
from core.permissions import can_manage_elections, json_login_required
from core.views_elections._helpers import _error_response, _serialize_election, _serialize_position


@require_GET
@json_login_required
def elections_list(request: HttpRequest) -> JsonResponse:
    top_level_only = request.GET.get("all") not in {"1", "true"}
    try:
        elections = elections_services.list_elections(top_level_only=top_level_only)
        voted = elections_services.voted_election_ids(user_id=request.user.pk)
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse(
        {
            "ok": True,
            "elections": [_serialize_election(e, has_voted=e.id in voted) for e in elections],
        }
    )


@require_GET
@json_login_required
def election_detail(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        election = elections_services.get_election(election_id)
        ballot = elections_services.election_ballot(election.id)
        voted_position_ids = sorted(
            vote.position_id
            for vote in elections_services.list_votes(user_id=request.user.pk, election_id=election.id)
        )
        sub_elections = elections_services.list_elections(parent_election_id=election.id)
    except ElectionError as exc:
        return _error_response(exc)

    return JsonResponse(
        {
            "ok": True,
            "election": _serialize_election(
                election,
                has_voted=bool(voted_position_ids),
            ),
            "positions": [_serialize_position(position, candidates=candidates) for position, candidates in ballot],
            "voted_position_ids": voted_position_ids,
            "sub_elections": [_serialize_election(sub) for sub in sub_elections],
        }
    )


@require_GET
@json_login_required
def election_results(request: HttpRequest, election_id: int) -> JsonResponse:
    try:
        election = elections_services.get_election(election_id)
    except ElectionError as exc:
        return _error_response(exc)

    is_manager = can_manage_elections(request.user)
    if not is_manager and not (election.results_public and election.status == Election.Status.completed):
        return JsonResponse(
            {
                "ok": False,
                "error": "Results are not available for this election yet.",
                "code": "results_unavailable",
                "retryable": False,
            },
            status=403,
        )

    try:
        results = elections_services.election_results(election.id)
    except ElectionError as exc:
        return _error_response(exc)
    return JsonResponse({"ok": True, "results": results})
