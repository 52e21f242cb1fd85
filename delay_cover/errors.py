"""
Error taxonomy for the delay cover core.

Categories:
- validation: rejected synchronously, nothing was mutated
- invariant: a wrong-state transition, duplicate registration or double write.
  These point at a duplicate callback or an upstream logic error and must never
  be swallowed.
- collaborator: an external treasury / claims call did not behave as required
- not_supported: extension points that exist but have no policy yet
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DelayCoverError(Exception):
    category = "error"

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


# ---------------------------------------------------------------------------
# Validation errors
# ---------------------------------------------------------------------------

class ValidationFailure(DelayCoverError):
    category = "validation"


class InvalidTier(ValidationFailure):
    pass


class InsufficientFunds(ValidationFailure):
    pass


class UnknownRequest(ValidationFailure):
    """Fulfillment for a request id that is not (or no longer) pending."""


class UnknownRisk(ValidationFailure):
    pass


class NotYetDue(ValidationFailure):
    pass


class NotQueued(ValidationFailure):
    """Risk has no un-dispatched status check waiting."""


# ---------------------------------------------------------------------------
# Invariant violations
# ---------------------------------------------------------------------------

class InvariantViolation(DelayCoverError):
    category = "invariant"


class InvalidTransition(InvariantViolation):
    pass


class DuplicateRequest(InvariantViolation):
    pass


class AlreadyScheduled(InvariantViolation):
    pass


class SetOnceViolation(InvariantViolation):
    pass


# ---------------------------------------------------------------------------
# Collaborator failures
# ---------------------------------------------------------------------------

class CollaboratorError(DelayCoverError):
    category = "collaborator"


class PremiumCollectionError(CollaboratorError):
    pass


class ClaimsLedgerError(CollaboratorError):
    pass


class OracleDispatchError(CollaboratorError):
    pass


# ---------------------------------------------------------------------------
# Extension points
# ---------------------------------------------------------------------------

class NotSupportedError(DelayCoverError):
    category = "not_supported"
