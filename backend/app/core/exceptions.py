from enum import Enum


class ErrorKind(str, Enum):
    invalid_format = "invalid_format"
    not_found = "not_found"
    already_exists = "already_exists"
    conflict = "conflict"
    forbidden = "forbidden"
    invalid_state = "invalid_state"


class AppError(Exception):
    """Base class for all application exceptions."""
    kind: ErrorKind = ErrorKind.invalid_format

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidFormatError(AppError, ValueError):
    """Raised for malformed times, dates or enum values.

    Also a ValueError so pydantic validators report it as a field error.
    """
    kind = ErrorKind.invalid_format

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    kind = ErrorKind.not_found

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class AlreadyExistsError(AppError):
    kind = ErrorKind.already_exists

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class SchedulingConflictError(AppError):
    """Raised when a slot collides with an existing one.

    ``details`` carries the axes, the colliding slot, its subject and time range.
    """
    kind = ErrorKind.conflict

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class ForbiddenError(AppError):
    kind = ErrorKind.forbidden

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


class InvalidStateError(AppError):
    """Raised on an illegal absence state transition."""
    kind = ErrorKind.invalid_state

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)
