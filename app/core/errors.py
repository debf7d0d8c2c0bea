"""
Error Taxonomy Module

Domain exceptions raised by the service layer. The HTTP layer maps each class to a
status code in app.main; services never raise HTTPException themselves.
"""
from dataclasses import dataclass
from typing import Any, List, Optional


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem."""
    field: str
    message: str
    value: Optional[Any] = None

    def as_dict(self) -> dict:
        data = {"field": self.field, "message": self.message}
        if self.value is not None:
            data["value"] = self.value
        return data


class AppError(Exception):
    """Base class for every error the service layer raises on purpose."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Input was rejected before any write happened."""

    def __init__(self, errors: List[FieldError]):
        self.errors = list(errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(summary or "Invalid input")

    @classmethod
    def single(cls, field: str, message: str, value: Any = None) -> "ValidationError":
        return cls([FieldError(field, message, value)])


class AuthorizationError(AppError):
    """The requester has no resolvable identity or the resource is outside their visibility."""


class NotFoundError(AppError):
    """A direct-by-id lookup did not resolve to a row."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class InfrastructureError(AppError):
    """The data store failed. Never to be reported as an empty result."""


class NotificationDispatchError(AppError):
    """Delivery to one recipient failed. Always non-fatal for the triggering write."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"Notification to {recipient} failed: {reason}")
        self.recipient = recipient
        self.reason = reason
