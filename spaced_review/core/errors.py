"""
Error taxonomy for the review engine.

Pure functions raise ValidationError synchronously. Stores raise
PersistenceError (or NotFoundError for missing records); the session
controller is the only place that catches persistence failures.
"""


class ReviewEngineError(Exception):
    """Base class for all review engine errors."""


class ValidationError(ReviewEngineError):
    """Quality/rating outside its domain, or malformed item state."""


class NotFoundError(ReviewEngineError):
    """Referenced item or attempt does not exist."""


class PersistenceError(ReviewEngineError):
    """A store read or write failed. Treated as transient."""


class ConcurrencyError(PersistenceError):
    """A write would overwrite a newer state of the same item."""


class SessionStateError(ReviewEngineError):
    """A session operation was called in the wrong phase."""
