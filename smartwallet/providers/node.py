"""
Chain node provider: EntryPoint reads, token allowances and gas prices.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .base import JsonRpcProvider, RpcError
from ..config import Settings, settings as default_settings
from ..core.execution.encoding import (
    ERC20_ALLOWANCE,
    build_entrypoint_get_nonce_call,
    build_get_sender_address_call,
    decode_sender_address_revert,
    decode_uint256,
    encode_function_call,
)
from ..core.execution.models import FeeData
from ..core.recovery import NotReadyError

logger = logging.getLogger(__name__)


class NodeError(RpcError):
    """Chain node provider error."""
    provider = "node"


def _revert_data(error: NodeError) -> Optional[str]:
    data = error.data
    # Nodes nest revert data differently: "0x..", {"data": "0x.."} or {"originalError": {...}}
    while isinstance(data, dict):
        data = data.get("data") or data.get("originalError")
    return data if isinstance(data, str) else None


class NodeProvider(JsonRpcProvider):
    name = "node"
    error_class = NodeError

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = config or default_settings
        super().__init__(self._settings.rpc_url, client, self._settings.request_timeout_seconds)

    async def _require_ready(self) -> None:
        if not await self.ready():
            raise NotReadyError("node", "Chain node RPC is not configured")

    async def get_chain_id(self) -> int:
        await self._require_ready()
        return int(await self._rpc_call("eth_chainId", []), 16)

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        await self._require_ready()
        return await self._rpc_call("eth_call", [{"to": to, "data": data}, block])

    async def get_entry_point_nonce(self, sender: str, key: int = 0) -> int:
        result = await self.eth_call(
            self._settings.entry_point_address,
            build_entrypoint_get_nonce_call(sender, key),
        )
        return decode_uint256(result)

    async def get_sender_address(self, init_code: str) -> str:
        """Counterfactual account address, read from EntryPoint's SenderAddressResult revert."""
        try:
            await self.eth_call(
                self._settings.entry_point_address,
                build_get_sender_address_call(init_code),
            )
        except NodeError as exc:
            revert = _revert_data(exc)
            if revert is None:
                raise
            try:
                return decode_sender_address_revert(revert)
            except ValueError:
                raise exc from None
        raise NodeError("getSenderAddress did not revert with SenderAddressResult")

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        result = await self.eth_call(token, encode_function_call(ERC20_ALLOWANCE, [owner, spender]))
        return decode_uint256(result)

    def _with_buffer(self, value: int) -> int:
        return value + (value // 100) * self._settings.gas_price_buffer_percent

    async def get_fee_data(self) -> FeeData:
        """
        Suggested EIP-1559 fees: tip = eth_maxPriorityFeePerGas plus the buffer,
        maxFee = 2 * baseFee + tip. Chains without a base fee use eth_gasPrice.
        """
        await self._require_ready()

        block: Dict[str, Any] = await self._rpc_call("eth_getBlockByNumber", ["latest", False]) or {}
        base_fee = block.get("baseFeePerGas")
        if base_fee is not None:
            try:
                tip = int(await self._rpc_call("eth_maxPriorityFeePerGas", []), 16)
            except NodeError as exc:
                logger.debug(f"eth_maxPriorityFeePerGas unavailable, using legacy gas price: {exc}")
            else:
                tip = self._with_buffer(tip)
                return FeeData(
                    max_fee_per_gas=int(base_fee, 16) * 2 + tip,
                    max_priority_fee_per_gas=tip,
                )

        gas_price = self._with_buffer(int(await self._rpc_call("eth_gasPrice", []), 16))
        return FeeData(max_fee_per_gas=gas_price, max_priority_fee_per_gas=gas_price)
