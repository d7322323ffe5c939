from django.dispatch import Signal

# Sent exactly once per applied status transition, from the winning conditional
# update only. Keyword arguments: election, from_status, to_status, actor, automatic.
#
# Receivers run inside the transition's transaction, before it commits. Database
# writes they make commit or roll back with the status change. Anything that
# leaves the database (mail, webhooks, caches) must be deferred with
# transaction.on_commit so it never reports a transition that was rolled back.
election_status_changed = Signal()
