"""Error taxonomy for the CRM core.

Callers distinguish "bad input" (ValidationFailed) from "already processed"
(InvalidStateError) and from missing records (NotFoundError). Storage
failures surface as StorageError with the backend exception chained.
"""
from typing import Optional


class CRMError(Exception):
    """Base class for every error raised by langcrm."""


class ValidationFailed(CRMError):
    """Input rejected before any mutation. ``errors`` maps field -> reason."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {reason}" for field, reason in self.errors.items())
        super().__init__(f"Validation failed: {summary}")

    @classmethod
    def single(cls, field: str, reason: str) -> "ValidationFailed":
        return cls({field: reason})

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationFailed":
        """Flatten a pydantic ValidationError into field-level reasons."""
        errors: dict[str, str] = {}
        for err in exc.errors():
            # Discriminated unions prefix the location with the tag value
            loc = [str(part) for part in err.get("loc", ()) if not isinstance(part, int)]
            field = loc[-1] if loc else "__root__"
            message = err.get("msg", "invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.setdefault(field, message)
        return cls(errors)


class InvalidStateError(CRMError):
    """Operation not allowed in the entity's current lifecycle state."""


class NotFoundError(CRMError):
    """An update or delete targeted an id the store does not have."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StorageError(CRMError):
    """The persistence backend failed (I/O, network, constraint)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AttributionError(CRMError):
    """No current actor could be resolved for a mutating operation."""
