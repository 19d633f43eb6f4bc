"""
Tests for the Error Recovery System

Tests for error classification, user-facing messages and the retry policy.
"""

import pytest
from unittest.mock import AsyncMock

from smartwallet.core.recovery import (
    # Errors
    RecoverableError,
    UnrecoverableError,
    NetworkError,
    ConfirmationTimeoutError,
    InvalidParameterError,
    SubmissionRejectedError,
    OperationRevertedError,
    UnsupportedTokenError,
    classify_error,
    user_facing_message,
    # Retry
    RetryConfig,
    RetryPolicy,
)
from smartwallet.core.recovery.errors import ErrorCategory


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestErrorClassification:
    """Tests for error classification."""

    def test_recoverable_error_is_recoverable(self):
        """Test that RecoverableError is classified as recoverable."""
        error = RecoverableError("Test error")
        assert error.context.recoverable is True

    def test_unrecoverable_error_is_not_recoverable(self):
        """Test that UnrecoverableError is classified as not recoverable."""
        error = UnrecoverableError("Test error")
        assert error.context.recoverable is False

    def test_network_error(self):
        """Test NetworkError properties."""
        error = NetworkError("bundler unreachable", provider="bundler")

        assert error.category == ErrorCategory.NETWORK
        assert error.retry_after == 1.0
        assert error.context.provider == "bundler"

    def test_invalid_parameter_names_field(self):
        """Test InvalidParameterError carries the offending field."""
        error = InvalidParameterError("to", value="0x123")

        assert error.field == "to"
        assert error.category == ErrorCategory.VALIDATION
        assert "to" in error.message

    def test_submission_rejected_keeps_reason_verbatim(self):
        """Test the bundler's message is the error message unchanged."""
        error = SubmissionRejectedError("AA21 didn't pay prefund")

        assert error.message == "AA21 didn't pay prefund"
        assert str(error) == "AA21 didn't pay prefund"
        assert error.context.recoverable is False

    def test_timeout_keeps_user_op_hash(self):
        """Test a confirmation timeout still exposes the operation hash."""
        error = ConfirmationTimeoutError("0xabc", timeout_seconds=30)

        assert error.user_op_hash == "0xabc"
        assert error.context.user_op_hash == "0xabc"
        assert error.category == ErrorCategory.TIMEOUT

    def test_operation_reverted(self):
        """Test OperationRevertedError properties."""
        error = OperationRevertedError("0xabc", transaction_hash="0xdef")

        assert error.category == ErrorCategory.TRANSACTION_REVERTED
        assert error.transaction_hash == "0xdef"

    def test_classify_known_error_returns_its_context(self):
        """Test classification of pipeline errors uses their own context."""
        error = UnsupportedTokenError("0xtoken")
        assert classify_error(error) is error.context

    def test_classify_network_error(self):
        """Test classification of foreign network errors."""
        context = classify_error(Exception("Connection refused"))

        assert context.category == ErrorCategory.NETWORK
        assert context.recoverable is True

    def test_classify_rejection(self):
        """Test classification of bundler validation failures."""
        context = classify_error(Exception("AA25 invalid account nonce"))

        assert context.category == ErrorCategory.SUBMISSION_REJECTED
        assert context.recoverable is False

    def test_classify_revert_error(self):
        """Test classification of revert errors."""
        context = classify_error(Exception("execution reverted: transfer failed"))

        assert context.category == ErrorCategory.TRANSACTION_REVERTED
        assert context.recoverable is False

    def test_classify_unknown_error(self):
        """Test classification of unknown errors."""
        context = classify_error(Exception("Something weird happened"))

        assert context.category == ErrorCategory.UNKNOWN
        assert context.recoverable is True


class TestUserFacingMessage:
    """Tests for display messages."""

    def test_paymaster_rejection(self):
        assert user_facing_message(Exception("FailedOp(0, AA33 reverted (or OOG))")) == (
            "Transaction was rejected by the paymaster. Please try again later."
        )

    def test_insufficient_balance(self):
        assert user_facing_message("paymaster: insufficient balance") == (
            "Paymaster service has insufficient balance."
        )

    def test_user_rejection(self):
        assert user_facing_message("User rejected the request") == "Transaction was rejected by the user."

    def test_unknown_message_passes_through(self):
        assert user_facing_message(SubmissionRejectedError("custom failure")) == "custom failure"

    def test_none(self):
        assert user_facing_message(None) == "Unknown error occurred"


# =============================================================================
# Retry Policy Tests
# =============================================================================

class TestRetryPolicy:
    """Tests for the bounded retry policy."""

    @pytest.mark.asyncio
    async def test_successful_operation(self):
        """Test successful operation doesn't retry."""
        policy = RetryPolicy(RetryConfig(max_attempts=3))

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await policy.execute(operation)

        assert result == "success"
        assert call_count == 1
        assert policy.attempts == 1

    @pytest.mark.asyncio
    async def test_retry_recoverable_error(self):
        """Test retry on recoverable error."""
        sleep = AsyncMock()
        policy = RetryPolicy(RetryConfig(max_attempts=3, jitter=False), sleep=sleep)

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise NetworkError("Temporary failure")
            return "success"

        result = await policy.execute(operation)

        assert result == "success"
        assert call_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_unrecoverable(self):
        """Test no retry on unrecoverable error."""
        policy = RetryPolicy(RetryConfig(max_attempts=3), sleep=AsyncMock())

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            raise InvalidParameterError("amount")

        with pytest.raises(InvalidParameterError):
            await policy.execute(operation)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_all_retries_exhausted(self):
        """Test the last error is raised when all retries are exhausted."""
        policy = RetryPolicy(RetryConfig(max_attempts=3), sleep=AsyncMock())

        async def operation():
            raise NetworkError("Always fails")

        with pytest.raises(NetworkError, match="Always fails"):
            await policy.execute(operation)
        assert policy.attempts == 3

    def test_should_retry(self):
        """Test should_retry decisions."""
        policy = RetryPolicy(RetryConfig(max_attempts=3))

        assert policy.should_retry(NetworkError("test"), attempt=0) is True
        assert policy.should_retry(NetworkError("test"), attempt=2) is False
        assert policy.should_retry(SubmissionRejectedError("test"), attempt=0) is False


class TestExponentialBackoff:
    """Tests for backoff delays."""

    def test_backoff_increases(self):
        config = RetryConfig(initial_delay_seconds=0.5, exponential_base=2.0, jitter=False)

        assert config.get_delay(0) == 0.5
        assert config.get_delay(1) == 1.0
        assert config.get_delay(2) == 2.0

    def test_max_delay_enforced(self):
        config = RetryConfig(initial_delay_seconds=1.0, max_delay_seconds=5.0, jitter=False)

        assert config.get_delay(10) == 5.0

    @pytest.mark.asyncio
    async def test_retry_after_is_respected(self):
        """Test a provider's retry-after hint lengthens the delay."""
        sleep = AsyncMock()
        policy = RetryPolicy(
            RetryConfig(max_attempts=2, initial_delay_seconds=0.1, jitter=False),
            sleep=sleep,
        )

        attempts = 0
        async def operation():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise NetworkError("flaky")
            return "ok"

        assert await policy.execute(operation) == "ok"
        sleep.assert_awaited_once_with(1.0)
