"""
Domain exceptions for the session/chunk/playlist services.

Services raise these; the HTTP layer in main.py maps them to status codes.
"""

from typing import Optional


class ApplicationError(Exception):
    """Base exception for all application errors"""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ApplicationError):
    """Raised for bad durations, session ids, chunk ids or filenames"""

    status_code = 400

    def __init__(self, message: str, invalid_fields: Optional[dict] = None):
        details = {"invalid_fields": invalid_fields} if invalid_fields else {}
        super().__init__(message, details)


class NotFoundError(ApplicationError):
    """Raised when a session directory or a file inside it is missing"""

    status_code = 404

    def __init__(self, message: str, session_id: Optional[str] = None):
        details = {"session_id": session_id} if session_id else {}
        super().__init__(message, details)


class StorageError(ApplicationError):
    """Raised when listing or writing the chunk store fails"""

    status_code = 500

    def __init__(self, operation: str, message: str, session_id: Optional[str] = None):
        details = {"operation": operation}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, details)
