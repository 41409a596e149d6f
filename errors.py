"""
Error taxonomy shared by the services.

Services raise these; the HTTP layer in main.py turns them into JSON responses
of the form {"message": ...} (or {"errors": [...]} for field validation).
"""
from typing import Any, Dict, List, Optional


class ApiError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        if self.errors:
            return {"errors": self.errors}
        return {"message": self.message}


class TransitionError(ValidationError):
    def __init__(self, field: str, current: str, requested: str):
        super().__init__(f"Cannot change {field} from {current} to {requested}")
        self.field = field
        self.current = current
        self.requested = requested


class ConflictError(ApiError):
    status_code = 400
    default_message = "User already exists"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Not Found"


class AuthError(ApiError):
    """Authentication/authorization failure.

    `reason` is the internal classification (user_not_found, invalid_password,
    unauthorized, forbidden); it is logged and counted but never shown to the
    client, which only sees `message`.
    """

    status_code = 401
    default_message = "Not authorized"

    def __init__(self, reason: str, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, status_code)
        self.reason = reason
