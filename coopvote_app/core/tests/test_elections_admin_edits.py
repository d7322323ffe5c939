from __future__ import annotations

import datetime

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from core.elections_services import (
    ElectionFrozenError,
    ElectionValidationError,
    UnknownEntityError,
    create_candidate,
    create_election,
    create_position,
    current_active_election,
    delete_candidate,
    delete_position,
    update_candidate,
    update_election_details,
    update_position,
)
from core.models import AuditLogEntry, Candidate, Election, Position, Vote
from core.tests.utils_test_data import make_candidate, make_election, make_position, make_user

Status = Election.Status


class CreateElectionTests(TestCase):
    def test_new_elections_start_upcoming_even_when_start_has_passed(self) -> None:
        now = timezone.now()

        election = create_election(
            title="General meeting",
            start_datetime=now - datetime.timedelta(hours=1),
            end_datetime=now + datetime.timedelta(days=1),
        )

        self.assertEqual(election.status, Status.upcoming)
        self.assertTrue(AuditLogEntry.objects.filter(election=election, event_type="election_created").exists())

    def test_validation(self) -> None:
        now = timezone.now()
        cases = [
            ("ab", now, now + datetime.timedelta(days=1)),
            ("Valid title", now, now),
            ("Valid title", now, now - datetime.timedelta(days=1)),
        ]
        for title, start, end in cases:
            with self.subTest(title=title, end=end):
                with self.assertRaises(ElectionValidationError):
                    create_election(title=title, start_datetime=start, end_datetime=end)

        self.assertFalse(Election.objects.exists())

    def test_unknown_parent(self) -> None:
        now = timezone.now()

        with self.assertRaises(UnknownEntityError):
            create_election(
                title="Runoff",
                start_datetime=now,
                end_datetime=now + datetime.timedelta(days=1),
                parent_election_id=999_999,
            )


class UpdateElectionDetailsTests(TestCase):
    def test_edits_fields_and_audits(self) -> None:
        election = make_election()

        updated = update_election_details(election.id, actor="admin", title="Renamed election")

        self.assertEqual(updated.title, "Renamed election")
        entry = AuditLogEntry.objects.get(election=election, event_type="election_updated")
        self.assertEqual(entry.payload, {"fields": ["title"], "actor": "admin"})

    def test_status_cannot_be_edited(self) -> None:
        election = make_election()

        with self.assertRaises(ElectionValidationError):
            update_election_details(election.id, status=Status.active)

        election.refresh_from_db()
        self.assertEqual(election.status, Status.upcoming)

    def test_terminal_elections_are_frozen(self) -> None:
        election = make_election(status=Status.completed)

        with self.assertRaises(ElectionFrozenError):
            update_election_details(election.id, title="Too late")

    def test_dates_are_revalidated(self) -> None:
        election = make_election()

        with self.assertRaises(ElectionValidationError):
            update_election_details(election.id, end_datetime=election.start_datetime - datetime.timedelta(hours=1))

    def test_edit_keeps_status_written_by_a_transition(self) -> None:
        election = make_election()
        stale_copy = Election.objects.get(pk=election.pk)
        Election.objects.filter(pk=election.pk).update(status=Status.active, status_version=1)

        update_election_details(stale_copy.id, description="Updated")

        election.refresh_from_db()
        self.assertEqual(election.status, Status.active)
        self.assertEqual(election.description, "Updated")


class PositionAndCandidateTests(TestCase):
    def test_create_position_and_candidate(self) -> None:
        election = make_election()

        position = create_position(election_id=election.id, title="Chair", max_votes=1)
        candidate = create_candidate(position_id=position.id, name="Ada Lovelace")

        self.assertEqual(candidate.election_id, election.id)
        self.assertEqual(Position.objects.get().title, "Chair")

    def test_candidates_are_frozen_once_election_started(self) -> None:
        for status in (Status.active, Status.paused, Status.completed, Status.cancelled):
            with self.subTest(status=status):
                position = make_position(make_election(title=f"Election {status}", status=status))
                with self.assertRaises(ElectionFrozenError):
                    create_candidate(position_id=position.id, name="Late entry")

        self.assertFalse(Candidate.objects.exists())

    def test_duplicate_candidate_name_is_invalid(self) -> None:
        position = make_position(make_election())
        create_candidate(position_id=position.id, name="Ada")

        with self.assertRaises(ElectionValidationError):
            create_candidate(position_id=position.id, name="Ada")

    def test_positions_cannot_be_added_to_terminal_elections(self) -> None:
        election = make_election(status=Status.cancelled)

        with self.assertRaises(ElectionFrozenError):
            create_position(election_id=election.id, title="Chair")

    def test_max_votes_frozen_once_votes_exist(self) -> None:
        user = make_user("alice")
        election = make_election(status=Status.active)
        position = make_position(election)
        candidate = make_candidate(position, "Ada")
        Vote.objects.create(user=user, election=election, position=position, candidate=candidate, receipt="a" * 64)

        with self.assertRaises(ElectionFrozenError):
            update_position(position.id, max_votes=2)

        relabeled = update_position(position.id, title="President", description="Leads the board")
        self.assertEqual(relabeled.title, "President")
        self.assertEqual(relabeled.max_votes, 1)

    def test_max_votes_editable_before_votes(self) -> None:
        position = make_position(make_election())

        self.assertEqual(update_position(position.id, max_votes=3).max_votes, 3)
        with self.assertRaises(ElectionValidationError):
            update_position(position.id, max_votes=0)

    def test_unknown_position(self) -> None:
        with self.assertRaises(UnknownEntityError):
            create_candidate(position_id=999_999, name="Nobody")
        with self.assertRaises(UnknownEntityError):
            update_position(999_999, title="Nothing")


class CandidateAndPositionChangeTests(TestCase):
    def test_update_candidate_while_upcoming(self) -> None:
        candidate = make_candidate(make_position(make_election()), "Ada")

        updated = update_candidate(candidate.id, name="  Ada Lovelace ", photo_url="https://example.org/ada.png")

        candidate.refresh_from_db()
        self.assertEqual(updated.name, "Ada Lovelace")
        self.assertEqual(candidate.name, "Ada Lovelace")
        self.assertEqual(candidate.photo_url, "https://example.org/ada.png")
        self.assertEqual(candidate.description, "")

    def test_update_candidate_validates(self) -> None:
        position = make_position(make_election())
        make_candidate(position, "Ada")
        grace = make_candidate(position, "Grace")

        for changes in ({"name": "Ada"}, {"name": "G"}, {"photo_url": "not a url"}):
            with self.subTest(changes=changes):
                with self.assertRaises(ElectionValidationError):
                    update_candidate(grace.id, **changes)

        grace.refresh_from_db()
        self.assertEqual(grace.name, "Grace")

    def test_candidates_cannot_change_once_election_started(self) -> None:
        for status in (Status.active, Status.paused, Status.completed, Status.cancelled):
            with self.subTest(status=status):
                candidate = make_candidate(make_position(make_election(title=f"Election {status}", status=status)), "Ada")
                with self.assertRaises(ElectionFrozenError):
                    update_candidate(candidate.id, name="Renamed")
                with self.assertRaises(ElectionFrozenError):
                    delete_candidate(candidate.id)
                candidate.refresh_from_db()
                self.assertEqual(candidate.name, "Ada")

    def test_delete_candidate_while_upcoming(self) -> None:
        position = make_position(make_election())
        candidate = make_candidate(position, "Ada")
        make_candidate(position, "Grace")

        delete_candidate(candidate.id)

        self.assertEqual(list(Candidate.objects.values_list("name", flat=True)), ["Grace"])

    def test_delete_position_removes_its_candidates(self) -> None:
        election = make_election()
        position = make_position(election, "Chair")
        make_candidate(position, "Ada")
        kept = make_position(election, "Treasurer", order=1)

        delete_position(position.id)

        self.assertEqual(list(Position.objects.all()), [kept])
        self.assertFalse(Candidate.objects.exists())

    def test_positions_cannot_be_deleted_once_election_started(self) -> None:
        for status in (Status.active, Status.paused, Status.completed, Status.cancelled):
            with self.subTest(status=status):
                position = make_position(make_election(title=f"Election {status}", status=status))
                with self.assertRaises(ElectionFrozenError):
                    delete_position(position.id)

        self.assertEqual(Position.objects.count(), 4)

    def test_position_with_votes_is_never_deleted(self) -> None:
        election = make_election()
        position = make_position(election)
        candidate = make_candidate(position, "Ada")
        Vote.objects.create(
            user=make_user("alice"),
            election=election,
            position=position,
            candidate=candidate,
            receipt="a" * 64,
        )

        with self.assertRaises(ElectionFrozenError):
            delete_position(position.id)
        with self.assertRaises(ElectionFrozenError):
            delete_candidate(candidate.id)

        self.assertTrue(Position.objects.filter(pk=position.pk).exists())
        self.assertEqual(Vote.objects.count(), 1)

    def test_unknown_candidate_or_position(self) -> None:
        with self.assertRaises(UnknownEntityError):
            update_candidate(999_999, name="Nobody")
        with self.assertRaises(UnknownEntityError):
            delete_candidate(999_999)
        with self.assertRaises(UnknownEntityError):
            delete_position(999_999)


class CurrentActiveElectionTests(TestCase):
    def test_most_recently_started_top_level_active_election(self) -> None:
        self.assertIsNone(current_active_election())

        older = make_election(title="Older vote", status=Status.active, start_offset=datetime.timedelta(days=-3))
        newer = make_election(title="Newer vote", status=Status.active, start_offset=datetime.timedelta(days=-1))
        make_election(
            title="Newest sub vote",
            status=Status.active,
            start_offset=datetime.timedelta(hours=-1),
            parent_election=older,
        )

        self.assertEqual(current_active_election(), newer)


class AdminEditApiTests(TestCase):
    def setUp(self) -> None:
        self.manager = make_user("manager", manager=True)
        self.client.force_login(self.manager)

    def test_create_election_position_and_candidate(self) -> None:
        resp = self.client.post(
            reverse("election-create"),
            data={
                "title": "Board 2027",
                "start_datetime": "2027-01-10T09:00:00Z",
                "end_datetime": "2027-01-17T09:00:00Z",
                "status": "active",
            },
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        election_id = resp.json()["election"]["id"]
        self.assertEqual(resp.json()["election"]["status"], "upcoming")
        self.assertEqual(Election.objects.get(pk=election_id).created_by, self.manager)

        resp = self.client.post(
            reverse("election-position-create", args=[election_id]),
            {"title": "Chair", "max_votes": "1", "order": "0"},
        )
        self.assertEqual(resp.status_code, 201)
        position_id = resp.json()["position"]["id"]

        resp = self.client.post(reverse("position-candidate-create", args=[position_id]), {"name": "Ada"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["candidate"]["position_id"], position_id)

        resp = self.client.post(reverse("position-edit", args=[position_id]), {"title": "President"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["position"]["candidates"][0]["name"], "Ada")

    def test_create_election_requires_dates(self) -> None:
        resp = self.client.post(reverse("election-create"), {"title": "Board 2027"})

        self.assertEqual(resp.status_code, 400)

    def test_create_election_rejects_bad_datetime(self) -> None:
        resp = self.client.post(
            reverse("election-create"),
            {"title": "Board 2027", "start_datetime": "tomorrow", "end_datetime": "2027-01-17T09:00:00Z"},
        )

        self.assertEqual(resp.status_code, 400)

    def test_edit_rejects_status(self) -> None:
        election = make_election()

        resp = self.client.post(reverse("election-edit", args=[election.id]), {"status": "active"})

        self.assertEqual(resp.status_code, 400)
        election.refresh_from_db()
        self.assertEqual(election.status, Status.upcoming)

    def test_edit_frozen_election_is_409(self) -> None:
        election = make_election(status=Status.cancelled)

        resp = self.client.post(reverse("election-edit", args=[election.id]), {"title": "Renamed"})

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "election_frozen")

    def test_members_cannot_edit(self) -> None:
        self.client.force_login(make_user("member"))

        resp = self.client.post(reverse("election-create"), {"title": "Board 2027"})

        self.assertEqual(resp.status_code, 403)

    def test_edit_and_delete_candidate(self) -> None:
        position = make_position(make_election())
        candidate = make_candidate(position, "Ada")

        resp = self.client.post(
            reverse("candidate-edit", args=[candidate.id]),
            data={"name": "Ada Lovelace", "description": "Engineer"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["candidate"]["name"], "Ada Lovelace")
        self.assertEqual(resp.json()["candidate"]["description"], "Engineer")

        resp = self.client.post(reverse("candidate-delete", args=[candidate.id]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ok": True})
        self.assertFalse(Candidate.objects.exists())

        resp = self.client.post(reverse("candidate-delete", args=[candidate.id]))
        self.assertEqual(resp.status_code, 404)

    def test_candidate_changes_after_start_are_409(self) -> None:
        candidate = make_candidate(make_position(make_election(status=Status.active)), "Ada")

        resp = self.client.post(reverse("candidate-edit", args=[candidate.id]), {"name": "Renamed"})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "election_frozen")

        resp = self.client.post(reverse("candidate-delete", args=[candidate.id]))
        self.assertEqual(resp.status_code, 409)
        self.assertTrue(Candidate.objects.filter(pk=candidate.pk).exists())

    def test_delete_position(self) -> None:
        position = make_position(make_election())

        resp = self.client.post(reverse("position-delete", args=[position.id]))
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(Position.objects.exists())

        started = make_position(make_election(title="Started vote", status=Status.active))
        resp = self.client.post(reverse("position-delete", args=[started.id]))
        self.assertEqual(resp.status_code, 409)
        self.assertTrue(Position.objects.filter(pk=started.pk).exists())

    def test_delete_requires_post_and_permission(self) -> None:
        position = make_position(make_election())
        candidate = make_candidate(position, "Ada")

        self.assertEqual(self.client.get(reverse("position-delete", args=[position.id])).status_code, 405)

        self.client.force_login(make_user("member"))
        self.assertEqual(self.client.post(reverse("position-delete", args=[position.id])).status_code, 403)
        self.assertEqual(self.client.post(reverse("candidate-delete", args=[candidate.id])).status_code, 403)
        self.assertTrue(Candidate.objects.filter(pk=candidate.pk).exists())
