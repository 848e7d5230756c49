"""Progress-engine exceptions.

There is no not-found error: a missing XP or streak record reads as the
zero-value default everywhere.
"""


class ProgressError(Exception):
    """Base class for progress-engine failures."""

    retryable = False


class StoreUnavailableError(ProgressError):
    """The backing store could not be reached. Safe for the caller to retry with backoff."""

    retryable = True


class ConflictError(ProgressError):
    """A concurrent write invalidated an optimistic update."""

    retryable = True


class InvalidInputError(ProgressError, ValueError):
    """Caller supplied an out-of-range amount, count, session type, etc."""
