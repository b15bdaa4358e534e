"""
Exception types raised by the quiz relay.

Expected-empty outcomes (no tab pushed, no unit frame, no question text) are
ordinary return values and never raise.
"""

from typing import Optional


class QuizRelayError(Exception):
    """Base class for all quiz relay errors."""
    pass


class NavigationError(QuizRelayError):
    """Page navigation failed after every retry attempt."""

    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Failed to load page after {attempts} attempts: {cause}")


class ScrapeError(QuizRelayError):
    """A scrape task could not produce a result."""
    pass


class CompletionError(QuizRelayError):
    """The completion service returned an error or an unusable response."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class SessionDataError(QuizRelayError):
    """
    Session, tab or question index missing for a trigger.

    Not retried; the user is asked to restart the session.
    """
    pass


class InvalidPushError(QuizRelayError):
    """The browser agent pushed a malformed tab payload."""
    pass


class PoolNotRunningError(QuizRelayError):
    """A task was submitted to a browser pool that is not started."""
    pass


class StoreConflictError(QuizRelayError):
    """An optimistic store update lost every compare-and-set race."""

    def __init__(self, key: str, attempts: int):
        self.key = key
        self.attempts = attempts
        super().__init__(f"Concurrent updates to {key!r} did not settle after {attempts} attempts")
