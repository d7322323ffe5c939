from __future__ import annotations

import hashlib
import json

from django.conf import settings
from django.core.validators import MinLengthValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q


class ElectionQuerySet(models.QuerySet["Election"]):
    def top_level(self) -> ElectionQuerySet:
        """Exclude sub-elections; dashboards list only top-level cycles."""
        return self.filter(parent_election__isnull=True)

    def non_terminal(self) -> ElectionQuerySet:
        # Raw strings: Election.Status is not defined yet when this class is built.
        return self.exclude(status__in=["completed", "cancelled"])


class Election(models.Model):
    class Status(models.TextChoices):
        upcoming = "upcoming", "Upcoming"
        active = "active", "Active"
        paused = "paused", "Paused"
        completed = "completed", "Completed"
        cancelled = "cancelled", "Cancelled"

    title = models.CharField(max_length=100, validators=[MinLengthValidator(3)])
    description = models.TextField(blank=True, default="")
    start_datetime = models.DateTimeField()
    end_datetime = models.DateTimeField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.upcoming, db_index=True)

    # Bumped by every applied status transition; drivers key their local caches on it.
    status_version = models.PositiveIntegerField(default=0, editable=False)
    status_changed_at = models.DateTimeField(blank=True, null=True, editable=False)

    results_public = models.BooleanField(default=True)
    parent_election = models.ForeignKey(
        "self",
        on_delete=models.CASCADE,
        blank=True,
        null=True,
        related_name="sub_elections",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ElectionQuerySet.as_manager()

    class Meta:
        ordering = ("-start_datetime", "id")
        constraints = [
            models.CheckConstraint(
                condition=Q(end_datetime__gt=F("start_datetime")),
                name="core_election_end_after_start",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "start_datetime"], name="election_status_start"),
        ]
        permissions = [
            ("manage_election", "Can manage election lifecycle"),
        ]

    def __str__(self) -> str:
        return self.title

    @property
    def is_terminal(self) -> bool:
        return self.status in {self.Status.completed, self.Status.cancelled}


class Position(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="positions")
    title = models.CharField(max_length=100, validators=[MinLengthValidator(2)])
    description = models.TextField(blank=True, default="")
    max_votes = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ("order", "id")
        constraints = [
            models.CheckConstraint(
                condition=Q(max_votes__gte=1),
                name="core_position_max_votes_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.election_id})"


class Candidate(models.Model):
    # Denormalized from position.election so ballots can be filtered per election cheaply.
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="candidates")
    position = models.ForeignKey(Position, on_delete=models.CASCADE, related_name="candidates")
    name = models.CharField(max_length=100, validators=[MinLengthValidator(2)])
    description = models.TextField(blank=True, default="")
    photo_url = models.URLField(blank=True, default="", max_length=2048)

    class Meta:
        ordering = ("name", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["position", "name"],
                name="uniq_candidate_position_name",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.position_id})"


class VoteQuerySet(models.QuerySet["Vote"]):
    def for_election(self, *, election_id: int) -> VoteQuerySet:
        return self.filter(election_id=election_id)

    def for_user(self, *, user_id: int) -> VoteQuerySet:
        return self.filter(user_id=user_id)


class Vote(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="votes")
    election = models.ForeignKey(Election, on_delete=models.PROTECT, related_name="votes")

    # Denormalized from candidate.position; the uniqueness constraint below needs it on the row.
    position = models.ForeignKey(Position, on_delete=models.PROTECT, related_name="votes")
    candidate = models.ForeignKey(
        Candidate,
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name="votes",
    )
    is_abstain = models.BooleanField(default=False)

    receipt = models.CharField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = VoteQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            models.UniqueConstraint(
                fields=["election", "user", "position"],
                name="uniq_vote_election_user_position",
            ),
            models.CheckConstraint(
                condition=(
                    (Q(is_abstain=True) & Q(candidate__isnull=True))
                    | (Q(is_abstain=False) & Q(candidate__isnull=False))
                ),
                name="core_vote_candidate_matches_abstain",
            ),
        ]
        indexes = [
            models.Index(fields=["election", "created_at"], name="vote_el_at"),
            models.Index(fields=["user", "election"], name="vote_user_el"),
        ]

    def __str__(self) -> str:
        return f"vote:{self.election_id}:{self.receipt[:12]}"

    @classmethod
    def compute_receipt(
        cls,
        *,
        election_id: int,
        user_id: int,
        position_id: int,
        candidate_id: int | None,
        nonce: str,
    ) -> str:
        payload: dict[str, object] = {
            "election_id": election_id,
            "user_id": user_id,
            "position_id": position_id,
            "candidate_id": candidate_id,
            "nonce": nonce,
        }

        data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return hashlib.sha256(data).hexdigest()


class AuditLogEntry(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="audit_log")
    timestamp = models.DateTimeField(auto_now_add=True)
    event_type = models.CharField(max_length=64)
    payload = models.JSONField(blank=True, default=dict)
    is_public = models.BooleanField(default=False)

    class Meta:
        verbose_name_plural = "Audit log entries"
        ordering = ("timestamp", "id")
        indexes = [
            models.Index(fields=["election", "timestamp"], name="audit_el_ts"),
            models.Index(fields=["election", "event_type"], name="audit_el_event"),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.event_type}"


class Announcement(models.Model):
    class Priority(models.TextChoices):
        low = "low", "Low"
        normal = "normal", "Normal"
        high = "high", "High"

    election = models.ForeignKey(
        Election,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="announcements",
    )
    title = models.CharField(max_length=200)
    content = models.TextField()
    priority = models.CharField(max_length=8, choices=Priority.choices, default=Priority.normal)
    author = models.CharField(max_length=100, default="System")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def __str__(self) -> str:
        return self.title
