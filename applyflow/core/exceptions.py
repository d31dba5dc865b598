"""Custom exception classes"""

from typing import Any, Optional


class ApplyFlowException(Exception):
    """Base exception for ApplyFlow"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(ApplyFlowException):
    """Exception for validation errors (malformed payloads, unknown job types)"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundException(ApplyFlowException):
    """Exception for resource not found errors"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ConflictException(ApplyFlowException):
    """Exception for resource conflict errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, status_code=409, details=details)


class ExternalServiceException(ApplyFlowException):
    """Exception for external service errors"""

    def __init__(self, service: str, message: str):
        self.service = service
        full_message = f"External service error ({service}): {message}"
        super().__init__(full_message, status_code=502)


class QueueException(ApplyFlowException):
    """Exception for job queue errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details)
