"""Validator error types."""


class RecoverableValidationFailure(Exception):
    """One finding could not be computed; the rest of the batch continues."""
    pass
