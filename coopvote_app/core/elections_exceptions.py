"""Election error taxonomy.

Every error carries a stable ``code`` and a ``retryable`` flag so callers can
tell "you already acted" apart from "try again".
"""

from __future__ import annotations


class ElectionError(Exception):
    code: str = "election_error"
    retryable: bool = False


class ElectionNotActiveError(ElectionError):
    code = "election_not_active"

    def __init__(self, message: str, *, status: str) -> None:
        super().__init__(message)
        self.status = status


class DuplicatePositionVoteError(ElectionError):
    code = "duplicate_position_vote"


class StaleTransitionError(ElectionError):
    code = "stale_transition"

    def __init__(self, message: str, *, election_id: int, expected_from: str, current_status: str) -> None:
        super().__init__(message)
        self.election_id = election_id
        self.expected_from = expected_from
        self.current_status = current_status


class UnknownEntityError(ElectionError):
    code = "unknown_entity"

    def __init__(self, entity: str, entity_id: object, message: str | None = None) -> None:
        super().__init__(message or f"{entity.capitalize()} not found.")
        self.entity = entity
        self.entity_id = entity_id


class StoreUnavailableError(ElectionError):
    code = "store_unavailable"
    retryable = True


class InvalidTransitionError(ElectionError):
    code = "invalid_transition"


class ElectionFrozenError(ElectionError):
    code = "election_frozen"


class ElectionValidationError(ElectionError):
    code = "invalid"
