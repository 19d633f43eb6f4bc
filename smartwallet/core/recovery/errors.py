"""
Error Classification

Defines the error taxonomy of the UserOperation pipeline.
Errors are classified as recoverable (can retry) or unrecoverable (the
caller must change something before trying again).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    VALIDATION = "validation"                    # Malformed user input
    NOT_READY = "not_ready"                      # Signer/account/client missing
    UNSUPPORTED_MODE = "unsupported_mode"        # Paymaster mode unavailable
    UNSUPPORTED_TOKEN = "unsupported_token"      # Fee token not accepted
    NETWORK = "network"                          # Bundler/paymaster/node unreachable
    TIMEOUT = "timeout"                          # Receipt did not arrive in time
    ESTIMATION_REVERTED = "estimation_reverted"  # Preview operation would revert
    SUBMISSION_REJECTED = "submission_rejected"  # Bundler refused the signed op
    TRANSACTION_REVERTED = "transaction_reverted"  # Included but reverted
    PROVIDER = "provider"                        # JSON-RPC error from a provider
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    provider: Optional[str] = None
    user_op_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors that can be retried.

    These errors are transient:
    - Bundler or paymaster unreachable
    - Timeouts
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that cannot be retried with the same parameters.

    - Invalid input
    - Unsupported paymaster mode or token
    - Reverted estimation or operation
    - Bundler rejection
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class InvalidParameterError(UnrecoverableError):
    """User input rejected before any network call."""

    def __init__(self, field: str, message: Optional[str] = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(
            message or f"Invalid value for '{field}'",
            category=ErrorCategory.VALIDATION,
            context=ErrorContext(
                category=ErrorCategory.VALIDATION,
                recoverable=False,
                suggested_action=f"Correct the '{field}' field",
                details={"field": field},
            ),
        )


class NotReadyError(UnrecoverableError):
    """A required dependency (signer, account, client) is not initialized."""

    def __init__(self, dependency: str, message: Optional[str] = None):
        self.dependency = dependency
        super().__init__(
            message or f"{dependency} is not initialized",
            category=ErrorCategory.NOT_READY,
            context=ErrorContext(
                category=ErrorCategory.NOT_READY,
                recoverable=False,
                suggested_action="Connect a wallet before sending operations",
                details={"dependency": dependency},
            ),
        )


class UnsupportedModeError(UnrecoverableError):
    """Requested paymaster mode is not available for this account."""

    def __init__(self, mode: str, message: Optional[str] = None):
        self.mode = mode
        super().__init__(
            message or f"Paymaster mode '{mode}' is not available for this account",
            category=ErrorCategory.UNSUPPORTED_MODE,
            context=ErrorContext(
                category=ErrorCategory.UNSUPPORTED_MODE,
                recoverable=False,
                suggested_action="Pay gas with a supported token or the native currency",
                details={"mode": mode},
            ),
        )


class UnsupportedTokenError(UnrecoverableError):
    """Requested fee token is not accepted by the paymaster."""

    def __init__(self, token_address: str, message: Optional[str] = None):
        self.token_address = token_address
        super().__init__(
            message or f"Token {token_address} is not accepted by the paymaster",
            category=ErrorCategory.UNSUPPORTED_TOKEN,
            context=ErrorContext(
                category=ErrorCategory.UNSUPPORTED_TOKEN,
                recoverable=False,
                suggested_action="Choose one of the paymaster's supported tokens",
                details={"token": token_address},
            ),
        )


class NetworkError(RecoverableError):
    """Bundler, paymaster or node could not be reached."""

    def __init__(
        self,
        message: str = "Network error",
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            retry_after=1.0,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                retry_after_seconds=1.0,
                provider=provider,
                suggested_action="Retry with exponential backoff",
            ),
        )


class ConfirmationTimeoutError(RecoverableError):
    """The operation was submitted but no receipt arrived in time."""

    def __init__(
        self,
        user_op_hash: str,
        timeout_seconds: Optional[float] = None,
        message: Optional[str] = None,
    ):
        self.user_op_hash = user_op_hash
        super().__init__(
            message or f"No receipt for {user_op_hash} after {timeout_seconds}s",
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                user_op_hash=user_op_hash,
                suggested_action="Look the operation up later by its hash",
                details={"timeout_seconds": timeout_seconds},
            ),
        )


class EstimationRevertedError(UnrecoverableError):
    """The preview operation would revert."""

    def __init__(self, reason: str, provider: Optional[str] = None):
        self.reason = reason
        super().__init__(
            f"Gas estimation reverted: {reason}",
            category=ErrorCategory.ESTIMATION_REVERTED,
            context=ErrorContext(
                category=ErrorCategory.ESTIMATION_REVERTED,
                recoverable=False,
                provider=provider,
                suggested_action="Review the calls or the selected fee token",
                details={"reason": reason},
            ),
        )


class SubmissionRejectedError(UnrecoverableError):
    """Bundler (or paymaster) refused the operation. `reason` is kept verbatim."""

    def __init__(
        self,
        reason: str,
        user_op_hash: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        self.reason = reason
        self.user_op_hash = user_op_hash
        super().__init__(
            reason,
            category=ErrorCategory.SUBMISSION_REJECTED,
            context=ErrorContext(
                category=ErrorCategory.SUBMISSION_REJECTED,
                recoverable=False,
                provider=provider,
                user_op_hash=user_op_hash,
                suggested_action="Build a new operation",
                details={"reason": reason},
            ),
        )


class OperationRevertedError(UnrecoverableError):
    """The operation was included on-chain but its execution failed."""

    def __init__(
        self,
        user_op_hash: str,
        transaction_hash: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.user_op_hash = user_op_hash
        self.transaction_hash = transaction_hash
        super().__init__(
            reason or f"UserOperation {user_op_hash} reverted",
            category=ErrorCategory.TRANSACTION_REVERTED,
            context=ErrorContext(
                category=ErrorCategory.TRANSACTION_REVERTED,
                recoverable=False,
                user_op_hash=user_op_hash,
                suggested_action="Review transaction parameters",
                details={"transaction_hash": transaction_hash},
            ),
        )


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Foreign exceptions are classified by their message.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    message = str(error).lower()

    network_patterns = [
        "connection",
        "network",
        "unreachable",
        "refused",
        "dns",
        "socket",
        "ssl",
        "missing response",
        "server_error",
    ]
    if any(p in message for p in network_patterns):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            retry_after_seconds=1.0,
            suggested_action="Check network connectivity",
        )

    timeout_patterns = ["timeout", "timed out", "deadline"]
    if any(p in message for p in timeout_patterns):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            retry_after_seconds=5.0,
            suggested_action="Retry with longer timeout",
        )

    rejection_patterns = [
        "aa1",
        "aa2",
        "aa3",
        "invalid signature",
        "nonce",
        "insufficient",
        "user rejected",
        "user denied",
    ]
    if any(p in message for p in rejection_patterns):
        return ErrorContext(
            category=ErrorCategory.SUBMISSION_REJECTED,
            recoverable=False,
            suggested_action="Build a new operation",
        )

    revert_patterns = ["revert", "execution reverted", "out of gas"]
    if any(p in message for p in revert_patterns):
        return ErrorContext(
            category=ErrorCategory.TRANSACTION_REVERTED,
            recoverable=False,
            suggested_action="Review transaction parameters",
        )

    # Default to unknown but recoverable (safer to retry)
    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=True,
        suggested_action="Retry operation",
    )


# Ordered: the first matching pattern wins.
_USER_MESSAGES = [
    (("paymaster: insufficient balance", "insufficient balance"), "Paymaster service has insufficient balance."),
    (("aa33 reverted",), "Transaction was rejected by the paymaster. Please try again later."),
    (("gas required exceeds allowance",), "Transaction requires more gas than allowed. Try increasing gas limit."),
    (("network error", "connection error", "timeout"), "Network connection error. Please check your internet connection and try again."),
    (("user rejected", "user denied"), "Transaction was rejected by the user."),
    (("missing response", "code=server_error"), "Paymaster service unavailable. Please try again later."),
    (("nonce too low", "nonce mismatch"), "Transaction nonce error. Please try again."),
]


def user_facing_message(error: Optional[Exception | str]) -> str:
    """Translate a bundler/paymaster failure into a message suitable for display."""
    if error is None:
        return "Unknown error occurred"

    text = error if isinstance(error, str) else (getattr(error, "message", None) or str(error))
    lowered = text.lower()
    for patterns, friendly in _USER_MESSAGES:
        if any(p in lowered for p in patterns):
            return friendly
    return text
