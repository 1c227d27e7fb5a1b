"""
Typed exceptions for competition and scoring errors.

Every error carries a user-facing message that routes surface verbatim.
They subclass ValueError so callers that only care about "bad request"
can keep catching ValueError.
"""


class ScoringError(ValueError):
    """Base exception for competition/scoring errors."""

    status_code = 400


class ValidationError(ScoringError):
    """Input rejected before any write."""

    status_code = 400


class NotFoundError(ScoringError):
    """Referenced entity does not exist."""

    status_code = 404


class PermissionDeniedError(ScoringError):
    """Caller is not allowed to perform the action."""

    status_code = 403


class ConflictError(ScoringError):
    """Write conflicts with existing rows."""

    status_code = 409


class StateError(ScoringError):
    """Action not allowed in the entity's current status."""

    status_code = 409


class CompetitionNotFoundError(NotFoundError):
    def __init__(self, competition_id: int):
        super().__init__(f"Competition {competition_id} not found")


class InvitationNotFoundError(NotFoundError):
    def __init__(self, invitation_id: int):
        super().__init__(f"Invitation {invitation_id} not found")


class CatchNotFoundError(NotFoundError):
    def __init__(self, catch_id: int):
        super().__init__(f"Catch {catch_id} not found")


class AlreadyJoinedError(ConflictError):
    def __init__(self):
        super().__init__("Already joined this competition")


class CompetitionFullError(ConflictError):
    def __init__(self, max_participants: int):
        super().__init__(f"Competition is full ({max_participants} participants)")


class DuplicateInvitationError(ConflictError):
    def __init__(self):
        super().__init__("A pending invitation already exists for this user")


class NotAParticipantError(PermissionDeniedError):
    def __init__(self):
        super().__init__("Not a participant in this competition")


class NotCompetitionCreatorError(PermissionDeniedError):
    def __init__(self):
        super().__init__("Only the competition creator can do this")


class NotInviteeError(PermissionDeniedError):
    def __init__(self):
        super().__init__("Not authorized to respond to this invitation")


class NotCatchOwnerError(PermissionDeniedError):
    def __init__(self):
        super().__init__("Not authorized to modify this catch")


class JoinWindowClosedError(StateError):
    def __init__(self, status: str):
        super().__init__(f"Cannot join a {status} competition")


class CannotLeaveActiveError(StateError):
    def __init__(self, status: str):
        super().__init__(f"Cannot leave a {status} competition; leaving is only allowed before it starts")


class AlreadyResolvedError(StateError):
    def __init__(self, status: str):
        super().__init__(f"Invitation already {status}")


class InvalidStatusTransitionError(StateError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change competition status from {current} to {target}")
