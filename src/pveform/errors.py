class PveFormError(Exception):
    """Base class for pveform errors."""


class SchemaError(PveFormError):
    """Raised when a property schema table is malformed."""


class DecodeError(PveFormError):
    """Raised when an encoded property string cannot be decoded."""


class ParseError(PveFormError):
    """Raised for invalid bus-qualified device names."""


class _FieldError(PveFormError):
    def __init__(self, field: str | None, message: str) -> None:
        super().__init__(f"{field}: {message}" if field else message)
        self.field = field
        self.message = message


class ReassembleError(_FieldError):
    """Raised when a working record cannot be turned back into a submission."""


class ValidationError(_FieldError):
    """Raised when a value violates its schema or a business rule."""


class SubmissionError(PveFormError):
    """Raised when the transport rejects a submission."""


class SubmissionInProgressError(PveFormError):
    """Raised when submitting while a previous submission has not finished."""
