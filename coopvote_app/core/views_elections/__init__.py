"""Election views package.

All public view functions are re-exported here so that ``core.urls`` can
reference ``views_elections.<view_name>``.
"""

from core.views_elections.detail import election_detail, election_results, elections_list
from core.views_elections.edit import (
    candidate_create,
    candidate_delete,
    candidate_edit,
    election_create,
    election_edit,
    position_create,
    position_delete,
    position_edit,
)
from core.views_elections.lifecycle import election_status_command, elections_tick
from core.views_elections.vote import election_abstain_submit, election_vote_submit, election_votes, my_votes

__all__ = [
    "candidate_create",
    "candidate_delete",
    "candidate_edit",
    "election_abstain_submit",
    "election_create",
    "election_detail",
    "election_edit",
    "election_results",
    "election_status_command",
    "election_vote_submit",
    "election_votes",
    "elections_list",
    "elections_tick",
    "my_votes",
    "position_create",
    "position_delete",
    "position_edit",
]
