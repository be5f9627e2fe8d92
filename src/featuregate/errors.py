"""Flag errors -- admin calls surface these, evaluation swallows them."""

from __future__ import annotations

from typing import Any


class FlagError(Exception):
    """Base class for every error raised by the flag registry."""

    code = "FLAG_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": True, "code": self.code, "message": self.message, "details": self.details}


class ValidationError(FlagError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, details={"field": field})
        self.field = field


class DuplicateNameError(FlagError):
    code = "DUPLICATE_NAME"

    def __init__(self, name: str) -> None:
        super().__init__(f"Feature flag name already exists: {name}", details={"name": name})
        self.name = name


class NotFoundError(FlagError):
    code = "NOT_FOUND"

    def __init__(self, identifier: str, by: str = "id") -> None:
        super().__init__(f"Feature flag not found ({by}): {identifier}", details={by: identifier})
        self.identifier = identifier


class ConflictError(FlagError):
    """Concurrent edit detected: the flag changed since the caller read it."""

    code = "CONFLICT"

    def __init__(self, flag_id: str, expected: Any = None, actual: Any = None) -> None:
        super().__init__(
            f"Feature flag {flag_id} was modified concurrently",
            details={
                "id": flag_id,
                "expected_updated_at": expected.isoformat() if expected else None,
                "actual_updated_at": actual.isoformat() if actual else None,
            },
        )
        self.flag_id = flag_id


class StorageError(FlagError):
    """Transient persistence failure (connection lost, timeout)."""

    code = "STORAGE_ERROR"
