"""
Task service errors

Error types raised by the task session and the persistence layer, plus the
standardized error envelope the HTTP layer returns.
"""

from typing import Any, Dict, Optional


class TaskServiceError(Exception):
    """Base exception for task service errors"""
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class TaskNotFoundError(TaskServiceError):
    """Raised when an operation targets a task id that is not in the collection"""
    def __init__(self, task_id: str):
        super().__init__(
            code="NOT_FOUND",
            message=f"Task {task_id} not found",
            details={"task_id": task_id}
        )


class TaskValidationError(TaskServiceError):
    """Raised when task fields fail recurrence or tag validation"""
    def __init__(self, errors, warnings=None):
        super().__init__(
            code="VALIDATION_ERROR",
            message="; ".join(errors),
            details={"errors": list(errors), "warnings": list(warnings or [])}
        )


class PersistenceError(TaskServiceError):
    """
    Raised when the task store fails to load, save or delete rows.

    ``details["operation"]`` names the failed call; the in-memory collection
    may differ from the store until the next reload.
    """
    def __init__(self, operation: str, message: str, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["operation"] = operation
        super().__init__(code="PERSISTENCE_ERROR", message=message, details=details)


def create_error_response(error: TaskServiceError) -> Dict[str, Any]:
    """
    Create a standardized error response

    Args:
        error: The TaskServiceError to convert

    Returns:
        Standardized error response dictionary
    """
    return {
        "success": False,
        "error": {
            "code": error.code,
            "message": error.message,
            "details": error.details
        }
    }

