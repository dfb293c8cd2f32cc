"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class WorkflowNotFoundError(NotFoundError):
    """Workflow not found"""
    error_code = "WORKFLOW_NOT_FOUND"


class StateNotFoundError(NotFoundError):
    """Workflow state not found"""
    error_code = "STATE_NOT_FOUND"


class TargetNotFoundError(NotFoundError):
    """Target entity not found"""
    error_code = "TARGET_NOT_FOUND"


class TransitionNotFoundError(NotFoundError):
    """Config transition or transition record not found"""
    error_code = "TRANSITION_NOT_FOUND"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class WorkflowValidationError(ValidationError):
    """Workflow definition validation failed"""
    error_code = "WORKFLOW_VALIDATION_ERROR"


class InvalidTargetError(ValidationError):
    """Transition has no destination state"""
    error_code = "INVALID_TARGET"


# Authorization Errors
class AuthorizationError(DomainError):
    """Actor lacks permission for action"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class UnauthorizedTransitionError(AuthorizationError):
    """Actor may not traverse the requested edge"""
    error_code = "UNAUTHORIZED_TRANSITION"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict"""
    error_code = "CONFLICT"
    http_status = 409


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


class StaleScheduleError(ConflictError):
    """Target's current state diverged from the scheduled origin state"""
    error_code = "STALE_SCHEDULE"


class DoubleExecutionError(ConflictError):
    """Same transition applied twice within one request"""
    error_code = "DOUBLE_EXECUTION"


class ImmutableTransitionError(ConflictError):
    """State or target fields of an executed transition cannot change"""
    error_code = "IMMUTABLE_TRANSITION"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class VetoedByExtensionError(EngineError):
    """A registered extension rejected the transition"""
    error_code = "VETOED_BY_EXTENSION"
    http_status = 409


class TransitionConstructionError(EngineError):
    """Transition built with neither a target nor a from-state"""
    error_code = "TRANSITION_CONSTRUCTION_ERROR"
    http_status = 400


class PersistenceError(EngineError):
    """Store read or write failed"""
    error_code = "PERSISTENCE_ERROR"
