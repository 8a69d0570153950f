"""Domain errors raised by the chore service and storage layers."""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_ERROR = "ValidationError"
    TEMPLATE_NOT_FOUND = "TemplateNotFound"
    INSTANCE_NOT_FOUND = "InstanceNotFound"
    INTEGRITY_ERROR = "IntegrityError"


class ChoreError(Exception):
    """Base domain error with code and user-safe message."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(ChoreError):
    """Raised when input is missing or violates a business rule."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message)


class NotFoundError(ChoreError):
    """Raised when a referenced record does not exist."""


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_id: int) -> None:
        super().__init__(ErrorCode.TEMPLATE_NOT_FOUND, "Template not found")
        self.template_id = template_id


class InstanceNotFoundError(NotFoundError):
    def __init__(self, instance_id: int) -> None:
        super().__init__(ErrorCode.INSTANCE_NOT_FOUND, "Chore instance not found")
        self.instance_id = instance_id


class IntegrityError(ChoreError):
    """Raised when an operation would leave related records inconsistent."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INTEGRITY_ERROR, message)
