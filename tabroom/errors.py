"""
tabroom/errors.py
Centralized error taxonomy for the tournament engine.

Every failure raised by the core is one of four kinds the API layer can map
to a response without inspecting messages:

- ValidationError: malformed input (indivisible pool, bad predecessor, uniqueness)
- NotFoundError:   dangling reference
- ConflictError:   double-booking, re-draw, lost concurrency race, cyclic chain
- StateError:      operation invalid for the current status

ForbiddenError is raised when the acting user's role set lacks a capability.

ERROR STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}
"""
from typing import Any, Dict, Optional


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    INDIVISIBLE_POOL = "INDIVISIBLE_POOL"
    INVALID_PREDECESSOR = "INVALID_PREDECESSOR"

    FORBIDDEN = "FORBIDDEN"
    SCOPE_VIOLATION = "SCOPE_VIOLATION"

    NOT_FOUND = "NOT_FOUND"

    CONFLICT = "CONFLICT"
    DOUBLE_BOOKING = "DOUBLE_BOOKING"
    ALREADY_DRAWN = "ALREADY_DRAWN"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    CYCLIC_PREDECESSOR = "CYCLIC_PREDECESSOR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    INVALID_STATE = "INVALID_STATE"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    PREREQUISITE_NOT_MET = "PREREQUISITE_NOT_MET"


class TabroomError(Exception):
    """Base engine exception with consistent structure"""

    status_code = 500
    error = "Internal Error"

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
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


class ValidationError(TabroomError):
    """400 Bad Request - Invalid input"""
    status_code = 400
    error = "Validation Error"

    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class ForbiddenError(TabroomError):
    """403 Forbidden - Role set lacks the capability"""
    status_code = 403
    error = "Forbidden"

    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class NotFoundError(TabroomError):
    """404 Not Found - Resource does not exist"""
    status_code = 404
    error = "Not Found"

    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(message, code)


class ConflictError(TabroomError):
    """409 Conflict - Double-booking or lost race"""
    status_code = 409
    error = "Conflict"

    def __init__(self, message: str, code: str = ErrorCode.CONFLICT, details: Optional[Dict] = None):
        super().__init__(message, code, details)


class StateError(TabroomError):
    """409 Conflict - Operation invalid for current status"""
    status_code = 409
    error = "Invalid State"

    def __init__(self, message: str, code: str = ErrorCode.INVALID_STATE, details: Optional[Dict] = None):
        super().__init__(message, code, details)
