"""
BoldMove - Error taxonomy.

Transient errors are retried inside the component that raised them.
Terminal errors propagate to the caller (API / CLI) and stop the pipeline.
"""


class BoldMoveError(Exception):
    """Base class for all pipeline errors."""


# =============================================================================
# Transient (retryable)
# =============================================================================


class TransientError(BoldMoveError):
    """A failure that may succeed if attempted again."""


class GenerationError(TransientError):
    """Text generation failed or returned nothing usable."""


class ProfileNotVisibleError(TransientError):
    """The profile row is not readable yet (trigger lag or stale token)."""


class StoreError(TransientError):
    """A database call failed."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


# =============================================================================
# Terminal
# =============================================================================


class TerminalError(BoldMoveError):
    """A failure the pipeline must not continue past."""


class ProfileUnavailableError(TerminalError):
    """The profile row could not be confirmed after all attempts."""


class InvalidSessionStateError(TerminalError):
    """An operation was attempted in a state that does not allow it."""


# =============================================================================
# Usage errors
# =============================================================================


class OperationInProgressError(BoldMoveError):
    """A second call arrived while the same operation was still running."""


class StepOrderError(BoldMoveError):
    """A tiny step was completed out of index order."""
