"""Error types for frm.

Two kinds of failure live here:

- Exceptions (``FrmError`` and subclasses) for operations that cannot proceed:
  a missing form, a mutation against a published form, a storage failure.
- Per-field validation results (``FieldError`` collected in
  ``ValidationErrors``). Validation failures are data, never raised, so that a
  renderer can re-draw only the fields whose error state changed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from frm.types import FieldErrorCode


class FrmError(Exception):
    """Base class for all frm errors.

    Attributes:
        message: Human-readable error description
        workspace_id: Workspace the failing operation was scoped to, if any
        details: Optional structured context (entity kind, identifiers, ...)
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        workspace_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.workspace_id = workspace_id
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "type": self.kind,
            "message": self.message,
        }
        if self.workspace_id is not None:
            result["workspace_id"] = self.workspace_id
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(FrmError):
    """Raised when a form, draft, field, submission or short code does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, identifier: Any, workspace_id: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            f"{entity} '{identifier}' not found",
            workspace_id=workspace_id,
            details={"entity": entity, "id": str(identifier)},
        )


class InvalidStateError(FrmError):
    """Raised when mutating a non-draft form, or addressing a field that is not on the form."""

    kind = "invalid_state"


class PersistenceError(FrmError):
    """Raised when storage is unavailable or a transaction fails."""

    kind = "persistence"


class ConflictOnPublishError(PersistenceError):
    """Raised when identity resolution or the commit fails while publishing a draft."""

    kind = "conflict_on_publish"


@dataclass(frozen=True)
class FieldError:
    """A single field's validation failure.

    Attributes:
        field_id: ID of the field whose submitted value failed validation
        code: Specific validation error code
        message: Human-readable message suitable for display next to the field

    Examples:
        >>> err = FieldError.of("9b1d...", FieldErrorCode.REQUIRED_NO_VALUE_PROVIDED)
        >>> err.message
        'This field is required'
    """
    field_id: str
    code: FieldErrorCode
    message: str

    @classmethod
    def of(cls, field_id: str, code: FieldErrorCode) -> "FieldError":
        return cls(field_id=field_id, code=code, message=code.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "field_id": self.field_id,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }


ERR_REQUIRED_NO_VALUE_PROVIDED = FieldErrorCode.REQUIRED_NO_VALUE_PROVIDED
ERR_UNKNOWN_OPTION_PROVIDED = FieldErrorCode.UNKNOWN_OPTION_PROVIDED


class ValidationErrors(Dict[str, FieldError]):
    """Mapping of field IDs to the error found validating that field's submitted values.

    Only offending fields appear as keys; a field's absence means it passed.
    """

    def any(self) -> bool:
        """Whether any field failed validation."""
        return len(self) > 0

    def codes(self) -> Dict[str, FieldErrorCode]:
        return {field_id: err.code for field_id, err in self.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {field_id: err.to_dict() for field_id, err in self.items()}


__all__ = [
    "FrmError",
    "NotFoundError",
    "InvalidStateError",
    "PersistenceError",
    "ConflictOnPublishError",
    "FieldError",
    "ValidationErrors",
    "ERR_REQUIRED_NO_VALUE_PROVIDED",
    "ERR_UNKNOWN_OPTION_PROVIDED",
]
