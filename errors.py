from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

GENERIC_ERROR_MESSAGE = "Ett fel uppstod. Försök igen."


class BudgetAppError(ValueError):
    """Base class for errors the services report back to callers.

    ``code`` is stable and machine readable; ``message`` is what the user
    sees.
    """

    code = "error"
    default_message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BudgetAppError):
    code = "validation_error"
    default_message = "Ogiltig inmatning"


class Forbidden(BudgetAppError):
    code = "forbidden"
    default_message = "Du har inte behörighet att göra detta"


class NotFound(BudgetAppError):
    code = "not_found"
    default_message = "Hittades inte"


class DuplicateUsername(BudgetAppError):
    code = "duplicate_username"
    default_message = "Användarnamnet är redan taget"


class SelfDeletion(BudgetAppError):
    code = "self_deletion"
    default_message = "Du kan inte ta bort ditt eget administratörskonto"


class StorageError(BudgetAppError):
    code = "storage_error"


@dataclass(frozen=True)
class Result(Generic[T]):
    success: bool
    value: Optional[T] = None
    error: Optional[BudgetAppError] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: BudgetAppError) -> "Result[T]":
        return cls(success=False, error=error)

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None
