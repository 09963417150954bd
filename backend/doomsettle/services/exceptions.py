"""
Settlement error hierarchy.

Every error carries a machine-readable ``code``, the HTTP ``status_code`` the API
layer answers with, and whether a worker may retry it.
"""


class SettlementError(Exception):
    """Base exception for settlement engine errors."""

    code = "settlement_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(SettlementError):
    """Event, bet, dispute or user does not exist."""

    code = "not_found"
    status_code = 404


class PreconditionError(SettlementError):
    """Guard violation. Rejected synchronously, never retried."""

    code = "precondition_failed"
    status_code = 400


class InsufficientEvidenceError(PreconditionError):
    """Not enough evidence items for the event's pool size."""

    code = "insufficient_evidence"


class DeadlineNotReachedError(PreconditionError):
    """Action attempted before the deadline that unlocks it."""

    code = "deadline_not_reached"


class StakeTooLowError(PreconditionError):
    """Dispute stake below the policy minimum."""

    code = "stake_too_low"


class InsufficientBalanceError(PreconditionError):
    """Ledger balance cannot cover the debit."""

    code = "insufficient_balance"


class InvalidDeadlinesError(PreconditionError):
    """Deadlines not ordered betting < event < resolution."""

    code = "invalid_deadlines"


class DuplicateDisputeError(PreconditionError):
    """Disputer already has an open dispute on this event."""

    code = "duplicate_dispute"
    status_code = 409


class DuplicateBetError(PreconditionError):
    """User already has a bet on this event."""

    code = "duplicate_bet"
    status_code = 409


class InvalidStateError(PreconditionError):
    """Transition not allowed from the current state."""

    code = "invalid_state"
    status_code = 409


class DisputeWindowClosedError(PreconditionError):
    """Dispute window has ended."""

    code = "dispute_window_closed"
    status_code = 403


class NotAuthorizedError(PreconditionError):
    """Actor may not perform this action."""

    code = "not_authorized"
    status_code = 403


class TransientSettlementError(SettlementError):
    """Store or queue temporarily unavailable. Retried with backoff."""

    code = "transient_failure"
    status_code = 503
    retryable = True


class FatalSettlementError(SettlementError):
    """Condition that needs manual operator review."""

    code = "fatal"
    status_code = 500
