from django.urls import path

from core import views_elections, views_health

urlpatterns = [
    path("elections/", views_elections.elections_list, name="elections"),
    path("elections/create/", views_elections.election_create, name="election-create"),
    path("elections/tick/", views_elections.elections_tick, name="elections-tick"),
    path("elections/votes/mine/", views_elections.my_votes, name="elections-my-votes"),
    path("elections/<int:election_id>/", views_elections.election_detail, name="election-detail"),
    path("elections/<int:election_id>/edit/", views_elections.election_edit, name="election-edit"),
    path("elections/<int:election_id>/status/", views_elections.election_status_command, name="election-status"),
    path("elections/<int:election_id>/vote/", views_elections.election_vote_submit, name="election-vote"),
    path("elections/<int:election_id>/abstain/", views_elections.election_abstain_submit, name="election-abstain"),
    path("elections/<int:election_id>/votes/", views_elections.election_votes, name="election-votes"),
    path("elections/<int:election_id>/results/", views_elections.election_results, name="election-results"),
    path("elections/<int:election_id>/positions/", views_elections.position_create, name="election-position-create"),
    path("positions/<int:position_id>/edit/", views_elections.position_edit, name="position-edit"),
    path("positions/<int:position_id>/delete/", views_elections.position_delete, name="position-delete"),
    path("positions/<int:position_id>/candidates/", views_elections.candidate_create, name="position-candidate-create"),
    path("candidates/<int:candidate_id>/edit/", views_elections.candidate_edit, name="candidate-edit"),
    path("candidates/<int:candidate_id>/delete/", views_elections.candidate_delete, name="candidate-delete"),
    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
]
