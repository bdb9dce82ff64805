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


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class ParseError(ValidationError):
    """Workflow or task definition is malformed"""
    error_code = "DEFINITION_PARSE_ERROR"


class SelectionError(ValidationError):
    """No single workflow definition applies to a client profile"""
    error_code = "WORKFLOW_SELECTION_ERROR"
    http_status = 422


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class ClientStateNotFoundError(NotFoundError):
    """No persisted state for client"""
    error_code = "CLIENT_STATE_NOT_FOUND"


class StepNotFoundError(NotFoundError):
    """Step id not present in runtime machine"""
    error_code = "STEP_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class TransitionError(EngineError):
    """Resolved transition target does not exist in the machine"""
    error_code = "TRANSITION_TARGET_NOT_FOUND"


# Storage Errors
class StorageError(DomainError):
    """Client state storage I/O failure"""
    error_code = "STORAGE_ERROR"
    http_status = 500


class CorruptRecordError(StorageError):
    """Persisted record could not be decoded"""
    error_code = "CORRUPT_RECORD"
