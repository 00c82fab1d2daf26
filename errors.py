# errors.py
# Error taxonomy shared by every engine operation

from typing import Optional


class BudgetError(Exception):
    """Base class for all engine errors."""


class ValidationError(BudgetError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(BudgetError):
    def __init__(self, resource: str, id: Optional[str] = None):
        message = f"{resource} with id {id} not found" if id else f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.id = id


class StorageError(BudgetError):
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ConflictError(BudgetError):
    pass


class ReadOnlyError(BudgetError):
    def __init__(self, month: str):
        super().__init__(f"Month {month} is read-only. Unlock it to make changes.")
        self.month = month


class NothingToUndo:
    """Sentinel returned by undo() when the log is empty."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOTHING_TO_UNDO"


NOTHING_TO_UNDO = NothingToUndo()


def format_error_for_user(error: BaseException) -> str:
    """Map an exception to the message shown to the user."""
    if isinstance(error, (ValidationError, NotFoundError, ConflictError, ReadOnlyError)):
        return str(error)
    if isinstance(error, StorageError):
        return "Failed to save data. Please try again."
    return "An error occurred. Please try again."
