"""
Exception hierarchy for lifecycle operations.

Every error is a ValueError so callers that only distinguish "bad request"
from "server fault" keep working.
"""

from typing import Any, Iterable, Optional


class TripflowError(ValueError):
    """Base class for all lifecycle errors."""


class ValidationError(TripflowError):
    """A required field is missing or a value is out of range."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class PendingLoadsError(ValidationError):
    """Trip completion attempted while attached loads are not delivered."""

    def __init__(self, message: str, pending_loads: Iterable[Any]) -> None:
        super().__init__(message, field="loads")
        self.pending_loads = list(pending_loads)


class StateMismatchError(TripflowError):
    """Transition attempted from an unexpected current status."""

    def __init__(
        self,
        entity: str,
        actual: Optional[str],
        expected: Iterable[Optional[str]],
        action: Optional[str] = None,
    ) -> None:
        self.entity = entity
        self.actual = actual
        self.expected = [e for e in expected]
        self.action = action
        labels = list(dict.fromkeys(e or "pending" for e in self.expected))
        expected_text = " or ".join(labels)
        prefix = f"Cannot {action.replace('_', ' ')} - " if action else ""
        super().__init__(
            f"{prefix}{entity} must be {expected_text} (current status: \"{actual or 'pending'}\")"
        )


class CompatibilityError(TripflowError):
    """Truck and trailer combination is not allowed."""


class NotFoundError(TripflowError):
    """Entity does not exist or is outside the caller's scope."""

    def __init__(self, entity: str) -> None:
        self.entity = entity
        super().__init__(f"{entity} not found or you do not have access to it")


class ComplianceBlockedError(TripflowError):
    """Blocking compliance mode found expired credentials."""

    def __init__(self, issues: Iterable[Any]) -> None:
        self.issues = list(issues)
        expired = [i for i in self.issues if getattr(i, "severity", None) == "expired"]
        super().__init__(
            f"Compliance check failed: {len(expired)} expired item(s) must be resolved"
        )
