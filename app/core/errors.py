"""
API error classes.

Services raise these; the handler registered in app.main turns them into
{"error": {"code": ..., "message": ...}} with the matching HTTP status.
"""

from typing import Optional


class APIError(Exception):
    """
    Base class for API errors.

    Attributes:
        code: Machine-readable error code (e.g. "NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status returned to the caller
    """

    def __init__(self, code: str, message: str, status_code: int = 500):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(APIError):
    """Malformed enum value, past deadline, missing field (400)."""

    def __init__(self, message: str):
        super().__init__(code="VALIDATION_ERROR", message=message, status_code=400)


class UnauthorizedError(APIError):
    """Missing or invalid credentials (401)."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(code="UNAUTHORIZED", message=message, status_code=401)


class ForbiddenError(APIError):
    """Wrong role or not the owner (403)."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(code="FORBIDDEN", message=message, status_code=403)


class NotFoundError(APIError):
    """Referenced document does not exist (404)."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        if resource_id:
            message = f"{resource} '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(code="NOT_FOUND", message=message, status_code=404)


class DuplicateApplicationError(APIError):
    """Student already applied to this opportunity (400)."""

    def __init__(self, message: str = "You have already applied to this opportunity."):
        super().__init__(code="DUPLICATE_APPLICATION", message=message, status_code=400)


class InvalidIndexError(APIError):
    """Notification index out of range (400)."""

    def __init__(self, index: int):
        super().__init__(
            code="INVALID_INDEX",
            message=f"Invalid notification index: {index}",
            status_code=400,
        )


class InvalidTransitionError(APIError):
    """Status change not allowed by the application lifecycle (409)."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"Cannot move application from '{current}' to '{target}'",
            status_code=409,
        )


class ConflictError(APIError):
    """Duplicate resource or state changed concurrently (409)."""

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(code=code, message=message, status_code=409)


class PartialFailureError(APIError):
    """
    Primary write succeeded but a mirror update did not (500).

    The application document is authoritative; mirrors can be rebuilt with
    scripts/reconcile_mirrors.py.
    """

    def __init__(self, message: str):
        super().__init__(code="PARTIAL_FAILURE", message=message, status_code=500)
