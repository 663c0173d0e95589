"""
Standardized error classification for the merge engine.

Every error carries the HTTP status the API layer should answer with and
enough context for an operator to understand what was refused. Validation
and lookup errors are always raised before any mutation begins.
"""

from typing import Any, Dict, Optional


class MergeEngineError(Exception):
    """
    Base exception for all merge-engine errors.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code the API should return
        details: Structured context (ids, counts) for debugging
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.message,
            "error_type": self.__class__.__name__,
            "details": self.details,
        }


class ValidationError(MergeEngineError):
    """
    Request validation failed - malformed input.

    Examples:
    - fewer than two account ids to merge
    - source and target location are the same row
    - explicit primary id not among the ids being merged
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Invalid request parameters",
        invalid_params: Optional[Dict[str, str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)
        self.invalid_params = invalid_params or {}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.invalid_params:
            data["invalid_params"] = self.invalid_params
        return data


class NotFoundError(MergeEngineError):
    """Referenced account or location does not exist."""

    status_code = 404

    def __init__(
        self,
        message: str = "Resource not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        if entity_id is not None:
            message = f"{message}: {entity_id}"
        merged = dict(details or {})
        if entity_type:
            merged.setdefault("entity_type", entity_type)
        if entity_id is not None:
            merged.setdefault("entity_id", entity_id)
        super().__init__(message=message, details=merged)
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvariantViolation(MergeEngineError):
    """
    The requested change would break an account/location structural rule.

    Examples:
    - merging an account that is already multi-location
    - stripping the last-but-zero location from a multi-location account
    - moving a location whose account still owns other locations
    """

    status_code = 409


class PartialFailure(MergeEngineError):
    """
    A cascade step failed after earlier steps were applied and the
    transaction could not be rolled back.

    This is the most severe class: the store may hold a half-merged state
    and an operator must inspect it.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        completed_steps: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        merged.setdefault("completed_steps", list(completed_steps or []))
        super().__init__(message=message, details=merged)
        self.completed_steps = list(completed_steps or [])
