"""
Custom exception classes for the Debt Collection Agent.
"""
from typing import Optional, Any, Dict
import uuid


class DebtAgentError(Exception):
    """Base exception for debt agent errors."""

    status_code: int = 500

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.detail,
            "correlation_id": self.correlation_id,
            "context": self.context,
        }


class NotFoundError(DebtAgentError):
    """Exception for unknown debt or debtor ids."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any, **context):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            detail=f"{entity} '{entity_id}' not found",
            error_code=f"DA_404_{entity.upper()}",
            context={"entity": entity, "entity_id": str(entity_id), **context},
        )


class ValidationError(DebtAgentError):
    """Exception for validation errors (bad amounts, duplicate keys)."""

    status_code = 422

    def __init__(
        self,
        detail: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **context
    ):
        error_code = "DA_422"
        if field:
            error_code = f"DA_422_{field.upper()}"
            detail = f"Validation failed for field '{field}': {detail}"

        self.field = field
        self.value = value
        super().__init__(
            detail=detail,
            error_code=error_code,
            context={"field": field, "value": None if value is None else str(value), **context},
        )


class InvalidTransitionError(DebtAgentError):
    """Raised when a debt status change is not allowed by the state machine."""

    status_code = 409

    def __init__(self, current_status: str, new_status: str, debt_id: Optional[str] = None):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            detail=f"Invalid transition from {current_status} to {new_status}",
            error_code="DA_409",
            context={
                "debt_id": debt_id,
                "current_status": current_status,
                "new_status": new_status,
            },
        )


class ChannelError(DebtAgentError):
    """Exception for message channel send failures."""

    status_code = 502

    def __init__(
        self,
        detail: str,
        address: Optional[str] = None,
        retry_after: Optional[int] = None,
        **context
    ):
        self.address = address
        self.retry_after = retry_after
        super().__init__(
            detail=detail,
            error_code="DA_502",
            context={"address": address, "retry_after": retry_after, **context},
        )


# Text intelligence exceptions
class IntelligenceError(DebtAgentError):
    """Base exception for text intelligence errors."""

    status_code = 503

    def __init__(self, detail: str, operation: Optional[str] = None, **context):
        self.operation = operation
        super().__init__(
            detail=detail,
            error_code="DA_503",
            context={"operation": operation, **context},
        )


class IntelligenceTimeoutError(IntelligenceError):
    """Exception for text intelligence timeouts."""

    pass


class IntelligenceRateLimitError(IntelligenceError):
    """Exception for text intelligence rate limit errors."""

    pass
