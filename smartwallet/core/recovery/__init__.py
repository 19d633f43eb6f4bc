"""
Error taxonomy and retry policy for the UserOperation pipeline.
"""

from .errors import (
    ConfirmationTimeoutError,
    ErrorCategory,
    ErrorContext,
    EstimationRevertedError,
    InvalidParameterError,
    NetworkError,
    NotReadyError,
    OperationRevertedError,
    RecoverableError,
    SubmissionRejectedError,
    UnrecoverableError,
    UnsupportedModeError,
    UnsupportedTokenError,
    classify_error,
    user_facing_message,
)
from .retry import RetryConfig, RetryPolicy

__all__ = [
    "ConfirmationTimeoutError",
    "ErrorCategory",
    "ErrorContext",
    "EstimationRevertedError",
    "InvalidParameterError",
    "NetworkError",
    "NotReadyError",
    "OperationRevertedError",
    "RecoverableError",
    "RetryConfig",
    "RetryPolicy",
    "SubmissionRejectedError",
    "UnrecoverableError",
    "UnsupportedModeError",
    "UnsupportedTokenError",
    "classify_error",
    "user_facing_message",
]
