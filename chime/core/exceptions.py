from __future__ import annotations


class AppError(Exception):
    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found", details: dict | None = None) -> None:
        super().__init__(code="not_found", message=message, details=details)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict | None = None) -> None:
        super().__init__(code="conflict", message=message, details=details)


class ValidationAppError(AppError):
    def __init__(self, message: str = "Validation failed", details: dict | None = None) -> None:
        super().__init__(code="validation_error", message=message, details=details)


class PresentationError(AppError):
    def __init__(self, message: str = "Notification could not be presented", details: dict | None = None) -> None:
        super().__init__(code="presentation_error", message=message, details=details)


class PersistenceError(AppError):
    def __init__(self, message: str = "Reminder store write failed", details: dict | None = None) -> None:
        super().__init__(code="persistence_error", message=message, details=details)


class InvariantViolation(AppError):
    def __init__(self, message: str = "Internal invariant violated", details: dict | None = None) -> None:
        super().__init__(code="invariant_violation", message=message, details=details)
