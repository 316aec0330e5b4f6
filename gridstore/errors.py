"""
Error types for gridstore.

This module defines the exception types raised by the data layer:
- GridStoreError: Base exception
- NullFieldError: A mapped field is None when a record is stored
- FieldCoercionError: A row value cannot be coerced to its field kind
- RecordDefinitionError: A record type cannot be described
- MigrationError: A schema migration script failed

Invariants:
    - All errors inherit from GridStoreError
    - Errors include context for debugging
    - Not-found and malformed predicates are never errors (empty results instead)
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GridStoreError(Exception):
    """Base exception for all gridstore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GRIDSTORE_ERROR"
        self.details = details or {}


class NullFieldError(GridStoreError):
    """A mapped field held None at store time.

    This is a programmer or data error. It is raised before any statement
    is issued and must not be masked by callers.
    """

    def __init__(self, field_name: str, record: Any, realm: Optional[str] = None) -> None:
        super().__init__(
            f"Trying to store field {field_name} for {record!r} which is unexpectedly null",
            code="NULL_FIELD",
            details={"field": field_name, "realm": realm},
        )
        self.field_name = field_name
        self.record = record


class FieldCoercionError(GridStoreError):
    """A row value could not be converted to the declared field kind."""

    def __init__(self, field_name: str, kind: str, value: Any) -> None:
        super().__init__(
            f"Cannot coerce {value!r} to {kind} for field '{field_name}'",
            code="FIELD_COERCION",
            details={"field": field_name, "kind": kind},
        )
        self.field_name = field_name
        self.kind = kind
        self.value = value


class RecordDefinitionError(GridStoreError):
    """A record type is not usable by a table handler."""

    def __init__(self, message: str, record_type: Optional[type] = None) -> None:
        super().__init__(
            message,
            code="RECORD_DEFINITION",
            details={"record_type": getattr(record_type, "__name__", None)},
        )


class MigrationError(GridStoreError):
    """Applying a migration script failed."""

    def __init__(self, store_name: str, version: int, cause: Exception) -> None:
        super().__init__(
            f"Migration {store_name} v{version} failed: {cause}",
            code="MIGRATION_FAILED",
            details={"store": store_name, "version": version},
        )
        self.store_name = store_name
        self.version = version
