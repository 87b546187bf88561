"""
Error types raised by the service layer.

Each error carries the HTTP status it maps to; main.py renders them.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """Missing or invalid input."""
    status_code = 400


class UnauthorizedError(ServiceError):
    status_code = 401


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """A unique field (email, order number) is already taken."""
    status_code = 409


class StorageError(ServiceError):
    """The document store is unavailable or rejected a write.

    The message is kept generic so backend detail never reaches clients.
    """
    status_code = 503

    def __init__(self, message: str = "Storage backend unavailable", details: Optional[dict] = None):
        super().__init__(message, details)
