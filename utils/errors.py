"""
Exceptions for Recode.

Store operations report ordinary not-found and validation outcomes with
None/False. Raising one of these inside a write transaction rolls it back.
"""


class RecodeError(Exception):
    """Base exception for all Recode exceptions."""
    pass


class ValidationError(RecodeError):
    """Raised when input fails validation."""
    pass


class InvalidQualityError(ValidationError):
    """Raised when a review quality is not an integer in 0..5."""
    pass


class NotFoundError(RecodeError):
    """Raised when a record is unknown or belongs to someone else."""
    pass


class UnauthenticatedError(RecodeError):
    """Raised when an operation needs a current user and there is none."""
    pass


class CorruptRecordError(RecodeError):
    """Raised when a persisted row can't be decoded."""
    pass
