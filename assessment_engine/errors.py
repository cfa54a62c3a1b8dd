"""
assessment_engine/errors.py
Centralized error taxonomy for the assessment engine

CORE PRINCIPLES:
- Business-rule violations are typed errors raised by the services
- The gateway maps every error to one consistent structure
- Errors are user-safe (no stack traces)
- Ownership failures never reveal that another user's session exists

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Bad paper configuration / invalid input
- 404: Unknown session or question, or session owned by someone else
- 409: Session already completed / finalize conflict
- 410: Deadline passed (the session has been finalized)
- 422: Validation error (Pydantic)
- 500: NEVER caused by user input (internal only)
"""

import logging
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    PAPER_NOT_FOUND = "PAPER_NOT_FOUND"
    EMPTY_PAPER = "EMPTY_PAPER"

    NOT_FOUND = "NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    QUESTION_NOT_FOUND = "QUESTION_NOT_FOUND"
    RESULT_NOT_FOUND = "RESULT_NOT_FOUND"

    INVALID_STATE = "INVALID_STATE"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    NOT_COMPLETED = "NOT_COMPLETED"

    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"

    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class APIError(Exception):
    """Base engine exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class ConfigurationError(APIError):
    """400 - The paper/configuration cannot produce a usable question list. Not retryable."""
    def __init__(self, message: str, code: str = ErrorCode.CONFIGURATION_ERROR, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Configuration Error",
            message=message,
            code=code,
            details=details
        )


class InvalidInputError(APIError):
    """400 - Malformed request value"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message=message,
            code=code,
            details=details
        )


class UnauthorizedError(APIError):
    """401 - Missing or invalid bearer token"""
    def __init__(self, message: str = "Authentication required", code: str = ErrorCode.AUTH_REQUIRED):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message=message,
            code=code
        )


class NotFoundError(APIError):
    """404 - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


class ForbiddenError(NotFoundError):
    """
    Ownership mismatch.

    Rendered exactly like a 404 for the same resource so the caller cannot
    tell an unknown session from someone else's.
    """
    def __init__(self, resource: str, identifier: Any = None, owner_id: Optional[str] = None):
        self.owner_id = owner_id
        super().__init__(resource, identifier, code=ErrorCode.SESSION_NOT_FOUND)


class InvalidStateError(APIError):
    """409 - Mutation attempted on a session that is no longer in progress"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_STATE, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Invalid State",
            message=message,
            code=code,
            details=details
        )


class DeadlineExceededError(APIError):
    """
    410 - The session deadline has passed.

    Terminal for the call, but the session itself has already been
    finalized with reason TIMEOUT by the time this is raised.
    """
    def __init__(self, session_id: int, deadline: Optional[str] = None):
        self.session_id = session_id
        details = {"session_id": session_id, "finalization_reason": "TIMEOUT"}
        if deadline:
            details["deadline"] = deadline
        super().__init__(
            status_code=status.HTTP_410_GONE,
            error="Deadline Exceeded",
            message="Time limit reached. Your exam was submitted automatically.",
            code=ErrorCode.DEADLINE_EXCEEDED,
            details=details
        )


class ConcurrencyConflictError(APIError):
    """409 - Finalize compare-and-set kept losing; re-read the session instead of retrying"""
    def __init__(self, session_id: int, expected_version: Optional[int] = None):
        self.session_id = session_id
        details = {"session_id": session_id}
        if expected_version is not None:
            details["expected_version"] = expected_version
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Concurrency Conflict",
            message="The session was modified concurrently. Re-read it before continuing.",
            code=ErrorCode.CONCURRENCY_CONFLICT,
            details=details
        )


def get_error_summary() -> Dict[str, Any]:
    """Return summary of error handling system for documentation"""
    return {
        "service": "assessment-engine-error-handler",
        "response_structure": {
            "success": "boolean (always false for errors)",
            "error": "string (error type)",
            "message": "string (human-readable)",
            "code": "string (machine-readable)",
            "details": "object (optional)"
        },
        "status_codes": {
            "400": "Invalid paper configuration or input",
            "401": "Bearer token missing or invalid",
            "404": "Unknown or not-owned session, unknown question, result not ready",
            "409": "Session already completed / concurrent finalize",
            "410": "Deadline exceeded (session auto-submitted)",
            "422": "Validation error (Pydantic)",
            "500": "Internal error (NEVER caused by user input)"
        },
        "error_codes": [
            attr for attr in dir(ErrorCode)
            if not attr.startswith('_')
        ]
    }
