"""
Fee-token allowance for the token paymaster.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ...config import Settings, settings as default_settings
from ..execution.encoding import ERC20_APPROVE, MAX_UINT256, encode_function_call
from ..execution.models import CallKind, ContractCall
from ..recovery import NotReadyError

if TYPE_CHECKING:
    from ...providers.node import NodeProvider

logger = logging.getLogger(__name__)

# Re-approve once the remaining allowance drops below half of an unlimited grant
APPROVAL_THRESHOLD = MAX_UINT256 // 2


class PaymasterAllowance:
    """Checks and grants the token paymaster's right to pull fee tokens."""

    def __init__(self, node: "NodeProvider", config: Optional[Settings] = None) -> None:
        self.node = node
        self._settings = config or default_settings

    @property
    def spender(self) -> str:
        if not self._settings.token_paymaster_address:
            raise NotReadyError("token_paymaster", "Token paymaster address is not configured")
        return self._settings.token_paymaster_address

    async def allowance(self, token: str, owner: str) -> int:
        return await self.node.get_allowance(token, owner, self.spender)

    async def needs_approval(self, token: str, owner: str) -> bool:
        current = await self.allowance(token, owner)
        logger.debug(f"Paymaster allowance for {token} held by {owner}: {current}")
        return current < APPROVAL_THRESHOLD

    def build_approval_call(self, token: str) -> ContractCall:
        return ContractCall(
            target_address=token,
            value=0,
            call_data=encode_function_call(ERC20_APPROVE, [self.spender, MAX_UINT256]),
            kind=CallKind.RAW_CALL,
        )

    async def approval_call_if_needed(self, token: str, owner: str) -> Optional[ContractCall]:
        if await self.needs_approval(token, owner):
            return self.build_approval_call(token)
        return None
