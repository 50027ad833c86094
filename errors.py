from typing import Any, Dict


class LibraryError(Exception):
    """Base class for every error the lending system reports to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ResourceNotFoundError(LibraryError):
    def __init__(self, resource_name: str, field_name: str, field_value: Any) -> None:
        super().__init__(f"{resource_name} not found with {field_name} : '{field_value}'")
        self.resource_name = resource_name
        self.field_name = field_name
        self.field_value = field_value


class InvalidBookError(LibraryError):
    pass


class InvalidBorrowerError(LibraryError):
    pass


class BusinessRuleError(LibraryError):
    """A borrow or return was rejected by the lending rules."""


class BookAlreadyBorrowedError(BusinessRuleError):
    pass


class BookAlreadyReturnedError(BusinessRuleError):
    pass


class ValidationError(LibraryError):
    """Field-level shape violations, one message per offending field."""

    def __init__(self, field_errors: Dict[str, str]) -> None:
        super().__init__("; ".join(f"{k}: {v}" for k, v in field_errors.items()))
        self.field_errors = dict(field_errors)


class StoreError(LibraryError):
    """The record store failed; the surrounding transaction was rolled back."""
