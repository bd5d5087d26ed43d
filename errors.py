"""
Error taxonomy

Every failure the core reports is one of these. NotFound and
ValidationError are expected outcomes the caller can act on;
StoreUnavailable means the database could not be reached and the
caller decides whether to retry.
"""
from typing import Any, Dict, List, Optional

REQUIRED_FIELD = "required_field"
LENGTH_BOUND = "length_bound"
INVALID_VALUE = "invalid_value"
DUPLICATE = "duplicate"
INVALID_REFERENCE = "invalid_reference"
TARGET_MISMATCH = "target_mismatch"
IMMUTABLE_FIELD = "immutable_field"
APPEND_ONLY = "append_only"
INVALID_TRANSITION = "invalid_transition"

VALIDATION_KINDS = (
    REQUIRED_FIELD,
    LENGTH_BOUND,
    INVALID_VALUE,
    DUPLICATE,
    INVALID_REFERENCE,
    TARGET_MISMATCH,
    IMMUTABLE_FIELD,
    APPEND_ONLY,
    INVALID_TRANSITION,
)


class DomainError(Exception):
    """Base class for everything the core raises on purpose."""


class NotFound(DomainError):
    def __init__(self, entity_type: str, key: Any):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type.capitalize()} not found: {key}")


class ValidationError(DomainError):
    def __init__(self, kind: str, field: str, message: Optional[str] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        if kind not in VALIDATION_KINDS:
            raise ValueError(f"unknown validation kind {kind!r}")
        self.kind = kind
        self.field = field
        self.errors = errors or []
        super().__init__(message or f"{field}: {kind.replace('_', ' ')}")

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind, "field": self.field, "detail": str(self)}
        if self.errors:
            data["errors"] = self.errors
        return data


class StoreUnavailable(DomainError):
    pass
