"""
UserOperation assembly from drafts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ...config import Settings, settings as default_settings
from ..recovery import InvalidParameterError, NotReadyError
from .account import SmartAccount
from .builder import encode_execute_call_data
from .models import DUMMY_SIGNATURE, OperationDraft, UserOperation, UserOpGasEstimate

if TYPE_CHECKING:
    from ...providers.node import NodeProvider

logger = logging.getLogger(__name__)

# Starting gas values before the bundler estimate replaces them
DEFAULT_CALL_GAS_LIMIT = 35_000
DEFAULT_VERIFICATION_GAS_LIMIT = 70_000
DEFAULT_PRE_VERIFICATION_GAS = 21_000

# Token-paid operations run the paymaster's transferFrom during validation,
# which a paymaster-less estimate does not see.
TOKEN_PRE_VERIFICATION_MULTIPLIER = 2
TOKEN_VERIFICATION_MULTIPLIER = 3


def apply_safety_multipliers(estimate: UserOpGasEstimate, token_mode: bool) -> UserOpGasEstimate:
    """Return the estimate padded for token payment; native and free gas are unchanged."""
    if not token_mode:
        return estimate
    return UserOpGasEstimate(
        call_gas_limit=estimate.call_gas_limit,
        verification_gas_limit=estimate.verification_gas_limit * TOKEN_VERIFICATION_MULTIPLIER,
        pre_verification_gas=estimate.pre_verification_gas * TOKEN_PRE_VERIFICATION_MULTIPLIER,
        paymaster_verification_gas_limit=estimate.paymaster_verification_gas_limit,
        paymaster_post_op_gas_limit=estimate.paymaster_post_op_gas_limit,
    )


class OperationAssembler:
    """Turns an `OperationDraft` into an unsigned UserOperation for an account."""

    def __init__(self, node: "NodeProvider", config: Optional[Settings] = None) -> None:
        self.node = node
        self._settings = config or default_settings

    def encode_call_data(self, draft: OperationDraft) -> str:
        return encode_execute_call_data(
            draft,
            execute_signature=self._settings.account_execute_signature,
            batch_signature=self._settings.account_execute_batch_signature,
        )

    async def build(
        self,
        account: Optional[SmartAccount],
        draft: OperationDraft,
    ) -> UserOperation:
        """
        Build the preview operation: real nonce, init code and fee data,
        default gas limits, no paymaster and a dummy signature.
        """
        if draft.is_empty:
            raise InvalidParameterError("calls", "Operation must contain at least one call")
        if account is None or not account.is_ready:
            raise NotReadyError("account", "Smart account is not initialized")

        call_data = self.encode_call_data(draft)
        nonce = await self.node.get_entry_point_nonce(account.address)
        fee_data = await self.node.get_fee_data()

        user_op = UserOperation(
            sender=account.address,
            nonce=nonce,
            init_code=account.init_code_for(nonce),
            call_data=call_data,
            call_gas_limit=DEFAULT_CALL_GAS_LIMIT,
            verification_gas_limit=DEFAULT_VERIFICATION_GAS_LIMIT,
            pre_verification_gas=DEFAULT_PRE_VERIFICATION_GAS,
            max_fee_per_gas=fee_data.max_fee_per_gas,
            max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
            paymaster_and_data="0x",
            signature=DUMMY_SIGNATURE,
        )
        logger.debug(f"Built preview UserOperation for {account.address} with {len(draft)} call(s), nonce {nonce}")
        return user_op


def build_query_operation(sender: str) -> UserOperation:
    """Minimal operation identifying `sender` for paymaster metadata queries."""
    return UserOperation(
        sender=sender,
        nonce=0,
        init_code="0x",
        call_data="0x",
        call_gas_limit=0,
        verification_gas_limit=0,
        pre_verification_gas=0,
        max_fee_per_gas=0,
        max_priority_fee_per_gas=0,
        paymaster_and_data="0x",
        signature=DUMMY_SIGNATURE,
    )
