"""
BoldMove Core - Errors and retry primitives shared by the journey pipeline.
"""

from boldmove.core.errors import (
    BoldMoveError,
    GenerationError,
    InvalidSessionStateError,
    OperationInProgressError,
    ProfileNotVisibleError,
    ProfileUnavailableError,
    StepOrderError,
    StoreError,
    TerminalError,
    TransientError,
)
from boldmove.core.retry import RetryResult, retry_with_backoff
from boldmove.core.single_flight import SingleFlight

__all__ = [
    "BoldMoveError",
    "TransientError",
    "TerminalError",
    "GenerationError",
    "ProfileNotVisibleError",
    "StoreError",
    "ProfileUnavailableError",
    "InvalidSessionStateError",
    "OperationInProgressError",
    "StepOrderError",
    "RetryResult",
    "retry_with_backoff",
    "SingleFlight",
]
