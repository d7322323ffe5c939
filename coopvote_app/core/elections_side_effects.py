import logging

from django.conf import settings
from django.db import transaction
from django.dispatch import receiver

from core.elections_signals import election_status_changed
from core.models import Announcement, AuditLogEntry, Election

logger = logging.getLogger(__name__)


@receiver(election_status_changed, dispatch_uid="core.election_status_audit")
def record_status_change_audit(
    sender,
    *,
    election: Election,
    from_status: str,
    to_status: str,
    actor: str | None = None,
    automatic: bool = False,
    **kwargs,
) -> None:
    with transaction.atomic():
        AuditLogEntry.objects.create(
            election=election,
            event_type="election_status_changed",
            payload={
                "from": from_status,
                "to": to_status,
                "actor": actor or "",
                "automatic": bool(automatic),
            },
            is_public=True,
        )


@receiver(election_status_changed, dispatch_uid="core.election_status_announcement")
def announce_status_change(
    sender,
    *,
    election: Election,
    from_status: str,
    to_status: str,
    **kwargs,
) -> None:
    if not settings.ELECTION_ANNOUNCEMENTS_ENABLED:
        return

    if to_status == Election.Status.active and from_status == Election.Status.upcoming:
        title = f"Election Started: {election.title}"
        content = f"Voting is now open for {election.title}. Cast your vote before {election.end_datetime:%Y-%m-%d %H:%M %Z}."
    elif to_status == Election.Status.completed:
        title = f"Election Completed: {election.title}"
        content = f"Voting has closed for {election.title}."
    else:
        return

    with transaction.atomic():
        Announcement.objects.create(
            election=election,
            title=title[:200],
            content=content,
            priority=Announcement.Priority.high,
            author="System",
        )
    logger.info("election_announcement_created election_id=%s to=%s", election.id, to_status)
