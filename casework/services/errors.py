"""
Exceptions raised by the lifecycle engine, repositories and workflow.

Refusals are NOT bugs - they are the system working correctly. Each carries a
human-readable message so callers can present it as-is.
"""
from typing import Optional

from casework.models.enums import CaseStatus, IneligibilityReason


class CaseworkError(Exception):
    """Base class for every error the casework services raise."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class RefusalError(CaseworkError):
    """A business rule refused the requested action."""


class InvalidTransition(RefusalError):
    """The (current, attempted) status pair is not in the transition table."""

    def __init__(self, current: CaseStatus, attempted: CaseStatus, message: Optional[str] = None):
        self.current = current
        self.attempted = attempted
        super().__init__(
            message
            or f"REFUSAL: Invalid status transition from {current.value} to {attempted.value}"
        )


class IneligibleAppeal(RefusalError):
    """The appeal-eligibility rule rejected an appeal."""

    def __init__(self, reason: IneligibilityReason, message: str):
        self.reason = reason
        super().__init__(message)


class Forbidden(RefusalError):
    """The caller's effective role does not allow this operation."""


class NotFound(CaseworkError):
    """A case or incident id is unknown."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ValidationError(CaseworkError):
    """A required field is missing or malformed for the requested operation."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ConcurrentModification(CaseworkError):
    """A row changed between read and write; re-read before deciding again."""


class StoreUnavailable(CaseworkError):
    """The record store could not be read or written. Safe to retry from scratch."""
