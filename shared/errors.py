"""
Shared error handling for the Link Rules service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class LinkRulesException(Exception):
    """Base exception for the Link Rules service."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(LinkRulesException):
    """A working copy failed validation; nothing was persisted."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "VALIDATION_ERROR"):
        super().__init__(code, message, details)

    @property
    def rule_index(self) -> Optional[int]:
        return self.details.get("rule_index")

    @property
    def field(self) -> Optional[str]:
        return self.details.get("field")


class LimitExceededError(ValidationError):
    """A plan ceiling on rules per link or conditions per rule was exceeded."""

    def __init__(self, resource: str, limit: int, rule_index: Optional[int] = None,
                 message: Optional[str] = None):
        details: Dict[str, Any] = {"resource": resource, "limit": limit, "field": resource}
        if rule_index is not None:
            details["rule_index"] = rule_index
        super().__init__(
            message or f"Limit exceeded for {resource}: maximum is {limit}",
            details,
            code="LIMIT_EXCEEDED"
        )
        self.resource = resource
        self.limit = limit


class PersistenceError(LinkRulesException):
    """A single create/update/delete/list call against rule storage failed."""

    status_code = 502

    def __init__(self, operation: str, message: str = "Persistence operation failed",
                 rule_id: Optional[str] = None, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        merged = {"operation": operation, "rule_id": rule_id}
        if status_code is not None:
            merged["status_code"] = status_code
        merged.update(details or {})
        super().__init__("PERSISTENCE_ERROR", f"{operation}: {message}", merged)
        self.operation = operation
        self.rule_id = rule_id
        self.http_status = status_code


class ExternalServiceError(LinkRulesException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class UnsafeRedirectError(LinkRulesException):
    """A redirect target failed template expansion or safety checks."""

    def __init__(self, message: str = "Unsafe redirect target", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNSAFE_REDIRECT", message, details)
