"""Exception types raised by the refresh pipeline and the read API."""

from typing import Optional

__all__ = [
    "UnlistedError",
    "FetchFailure",
    "ParseFailure",
    "PersistenceFailure",
    "StateConflict",
    "DataNotReady",
    "LoadInProgress",
    "CycleFailed",
]


class UnlistedError(Exception):
    """Base class for all tracker errors."""
    pass


class FetchFailure(UnlistedError):
    """Raised when a category fetch fails at the transport level."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ParseFailure(UnlistedError):
    """Raised when a response body is not a valid catalog."""

    def __init__(self, message: str, category: Optional[str] = None):
        super().__init__(message)
        self.category = category


class PersistenceFailure(UnlistedError):
    """Raised when a snapshot cannot be written, read or decoded."""
    pass


class StateConflict(UnlistedError):
    """Raised when an operation is invalid for the current state.

    Not retryable: it points at a logic error in the caller.
    """
    pass


class DataNotReady(UnlistedError):
    """Raised when no dataset can be served yet. Retryable."""
    pass


class LoadInProgress(DataNotReady):
    """Raised when another caller's on-demand load is still running."""
    pass


class CycleFailed(DataNotReady):
    """Raised when a refresh cycle or on-demand load aborted.

    The underlying FetchFailure, ParseFailure or PersistenceFailure is
    chained as ``__cause__``.
    """

    def __init__(self, message: str, stage: str = "unknown", cycle: Optional[int] = None):
        super().__init__(message)
        self.stage = stage
        self.cycle = cycle
