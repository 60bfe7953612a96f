"""
Table Service — Domain errors

Every public operation either returns its result or raises exactly one of these.
"""


class TableServiceError(Exception):
    pass


class NotFound(TableServiceError):
    """The referenced record is gone or was already processed.

    Expected under double-submission (two staff members pressing the same
    button), so callers log it at info level rather than as a failure.
    """


class ValidationError(TableServiceError):
    """A required field is missing or a value is out of range. Raised before any write."""


class DependencyFailure(TableServiceError):
    """The document store or the messaging channel could not be reached."""
