"""
UserOperation Submission State Machine

Drives one draft through signing, submission and confirmation:

    IDLE -> BUILDING -> SUBMITTED -> CONFIRMED
               |            |
               +-> FAILED <-+

A machine submits at most once. Terminal states are final; a new operation
needs a new machine.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Dict, List, Optional, Set

from ...config import Settings, settings as default_settings
from ...logging_config import operation_log_context
from ..fees.gas_config import DEFAULT_GAS_CONFIG, GasConfig
from ..paymaster.modes import ResolvedMode, mode_name
from ..recovery import (
    ConfirmationTimeoutError,
    InvalidParameterError,
    NotReadyError,
    OperationRevertedError,
    RecoverableError,
)
from .account import SmartAccount
from .assembler import OperationAssembler, apply_safety_multipliers
from .models import OperationDraft, SubmissionResult, UserOperation, UserOpReceipt

if TYPE_CHECKING:
    from ...providers.bundler import BundlerProvider
    from ...providers.paymaster import PaymasterProvider


class OperationState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({OperationState.CONFIRMED, OperationState.FAILED})


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        from_state: OperationState,
        to_state: OperationState,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or f"Cannot transition from {from_state.value} to {to_state.value}"
        super().__init__(self.message)


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: OperationState
    to_state: OperationState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    user_op_hash: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "userOpHash": self.user_op_hash,
            "errorMessage": self.error_message,
        }


TransitionCallback = Callable[[StateTransition, "UserOperationStateMachine"], Coroutine[Any, Any, None]]


class UserOperationStateMachine:
    """
    Signs, submits and confirms a single UserOperation.

    `confirm()` and `wait()` each run at most once. Their preconditions are
    checked before the first await, so a second caller is rejected without
    any network traffic.
    """

    TRANSITIONS: Dict[OperationState, Set[OperationState]] = {
        OperationState.IDLE: {OperationState.BUILDING},
        OperationState.BUILDING: {OperationState.SUBMITTED, OperationState.FAILED},
        OperationState.SUBMITTED: {OperationState.CONFIRMED, OperationState.FAILED},
        OperationState.CONFIRMED: set(),
        OperationState.FAILED: set(),
    }

    def __init__(
        self,
        draft: OperationDraft,
        resolved: ResolvedMode,
        account: Optional[SmartAccount],
        assembler: OperationAssembler,
        bundler: "BundlerProvider",
        paymaster: Optional["PaymasterProvider"] = None,
        config: Optional[Settings] = None,
        gas_config: Optional[GasConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.draft = draft
        self.resolved = resolved
        self.account = account
        self.assembler = assembler
        self.bundler = bundler
        self.paymaster = paymaster
        self.gas_config = gas_config or DEFAULT_GAS_CONFIG
        self.logger = logger or logging.getLogger(__name__)
        self._settings = config or default_settings

        self._state = OperationState.IDLE
        self._history: List[StateTransition] = []
        self._transition_callbacks: List[TransitionCallback] = []
        self._waiting = False

        self.user_operation: Optional[UserOperation] = None
        self.result: Optional[SubmissionResult] = None
        self.error: Optional[BaseException] = None

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def history(self) -> List[StateTransition]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def user_op_hash(self) -> Optional[str]:
        return self.result.user_op_hash if self.result else None

    def can_transition_to(self, to_state: OperationState) -> bool:
        return to_state in self.TRANSITIONS.get(self._state, set())

    def add_transition_callback(self, callback: TransitionCallback) -> None:
        self._transition_callbacks.append(callback)

    def snapshot(self) -> Dict[str, Any]:
        """Current state for a UI to render."""
        return {
            "state": self._state.value,
            "mode": mode_name(self.resolved.mode),
            "userOpHash": self.user_op_hash,
            "transactionHash": self.result.transaction_hash if self.result else None,
            "error": str(self.error) if self.error else None,
        }

    async def _transition(
        self,
        to_state: OperationState,
        reason: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> StateTransition:
        from_state = self._state
        if not self.can_transition_to(to_state):
            raise InvalidTransitionError(from_state, to_state)

        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            reason=reason,
            user_op_hash=self.user_op_hash,
            error_message=error_message,
        )
        # State changes before any await so concurrent callers see it
        self._state = to_state
        self._history.append(transition)

        self.logger.info(
            f"UserOperation {self.user_op_hash or '<unsent>'}: {from_state.value} -> {to_state.value}"
            f"{f' ({reason})' if reason else ''}"
        )

        for callback in self._transition_callbacks:
            try:
                await callback(transition, self)
            except Exception as e:
                self.logger.error(f"Transition callback error: {e}")

        return transition

    async def _fail(self, error: BaseException, reason: str) -> None:
        self.error = error
        await self._transition(OperationState.FAILED, reason=reason, error_message=str(error))

    async def confirm(self) -> SubmissionResult:
        """
        Build, sponsor, sign and submit the operation.

        Raises:
            InvalidParameterError: draft is empty (machine stays IDLE)
            NotReadyError: no account or signer (machine stays IDLE)
            InvalidTransitionError: confirm() already called
            SubmissionRejectedError: bundler or paymaster refused (machine FAILED)
        """
        if self._state != OperationState.IDLE:
            raise InvalidTransitionError(
                self._state,
                OperationState.BUILDING,
                f"Operation already {self._state.value}; build a new one to submit again",
            )
        if self.draft.is_empty:
            raise InvalidParameterError("calls", "Operation must contain at least one call")
        if self.account is None or not self.account.is_ready:
            raise NotReadyError("account", "Smart account or signer is not initialized")

        # Calls added to the draft after confirmation are not part of this operation
        draft = OperationDraft(self.draft.calls)
        account = self.account
        await self._transition(OperationState.BUILDING, reason=f"{len(draft)} call(s)")

        with operation_log_context(sender=account.address, paymaster_mode=mode_name(self.resolved.mode)):
            try:
                user_op_hash = await self._build_and_send(account, draft)
            except (Exception, asyncio.CancelledError) as exc:
                await self._fail(exc, reason="Submission failed")
                raise

        self.result = SubmissionResult(user_op_hash=user_op_hash)
        await self._transition(OperationState.SUBMITTED, reason="Accepted by bundler")
        return self.result

    async def _build_and_send(self, account: SmartAccount, draft: OperationDraft) -> str:
        entry_point = self._settings.entry_point_address

        user_op = await self.assembler.build(account, draft)
        estimate = await self.bundler.estimate_user_operation_gas(user_op, entry_point)
        user_op.apply_gas_estimate(apply_safety_multipliers(estimate, self.resolved.is_token_mode))
        self.gas_config.apply(user_op)

        if self.resolved.uses_paymaster:
            if self.paymaster is None:
                raise NotReadyError("paymaster", "Paymaster provider is required for sponsored operations")
            sponsorship = await self.paymaster.sponsor_user_operation(
                user_op,
                entry_point,
                self.resolved.code,
                self.resolved.token_address,
            )
            sponsorship.apply_to(user_op)

        user_op.signature = await account.signer.sign_user_op_hash(
            user_op.hash(entry_point, self._settings.chain_id)
        )
        self.user_operation = user_op
        return await self.bundler.send_user_operation(user_op, entry_point)

    async def wait(self, timeout: Optional[float] = None) -> SubmissionResult:
        """
        Wait for the operation's receipt.

        Args:
            timeout: Seconds to wait; defaults to `receipt_wait_timeout_seconds`
                (None waits until the caller cancels)

        Raises:
            InvalidTransitionError: not SUBMITTED, or already waiting
            OperationRevertedError: included but execution failed (machine FAILED)
            ConfirmationTimeoutError: no receipt in time (machine FAILED, hash kept)
        """
        if self._state != OperationState.SUBMITTED or self._waiting or self.result is None:
            raise InvalidTransitionError(
                self._state,
                OperationState.CONFIRMED,
                "wait() is only allowed once, after submission",
            )
        self._waiting = True
        user_op_hash = self.result.user_op_hash
        if timeout is None:
            timeout = self._settings.receipt_wait_timeout_seconds

        with operation_log_context(user_op_hash=user_op_hash):
            try:
                receipt = await asyncio.wait_for(self._poll_receipt(user_op_hash), timeout)
            except asyncio.TimeoutError:
                error = ConfirmationTimeoutError(user_op_hash, timeout)
                await self._fail(error, reason="Receipt wait timed out")
                raise error from None
            except (Exception, asyncio.CancelledError) as exc:
                await self._fail(exc, reason="Receipt polling failed")
                raise

            self.result.receipt = receipt
            if not receipt.success:
                error = OperationRevertedError(user_op_hash, receipt.transaction_hash, receipt.reason)
                await self._fail(error, reason="Execution reverted")
                raise error

            self.result.transaction_hash = receipt.transaction_hash
            await self._transition(OperationState.CONFIRMED, reason=f"Included in {receipt.transaction_hash}")
        return self.result

    async def _poll_receipt(self, user_op_hash: str) -> UserOpReceipt:
        interval = self._settings.receipt_poll_interval_seconds
        while True:
            try:
                receipt = await self.bundler.get_user_operation_receipt(user_op_hash)
            except RecoverableError as exc:
                self.logger.warning(f"Receipt poll for {user_op_hash} failed, polling again: {exc}")
                receipt = None
            if receipt is not None:
                return receipt
            await asyncio.sleep(interval)
