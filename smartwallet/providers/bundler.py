"""
ERC-4337 Bundler Provider.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import JsonRpcProvider, RpcError
from ..config import Settings, settings as default_settings
from ..core.execution.models import UserOperation, UserOpGasEstimate, UserOpReceipt
from ..core.recovery import EstimationRevertedError, NotReadyError, SubmissionRejectedError

logger = logging.getLogger(__name__)


class BundlerError(RpcError):
    """Bundler provider error."""
    provider = "bundler"


def _parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


class BundlerProvider(JsonRpcProvider):
    name = "bundler"
    timeout_s = 20
    error_class = BundlerError

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = config or default_settings
        super().__init__(self._settings.bundler_url, client, self._settings.request_timeout_seconds)

    async def _require_ready(self) -> None:
        if not await self.ready():
            raise NotReadyError("bundler", "Bundler provider is not configured")

    async def supported_entry_points(self) -> List[str]:
        await self._require_ready()
        result = await self._rpc_call("eth_supportedEntryPoints", [])
        return list(result or [])

    async def estimate_user_operation_gas(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> UserOpGasEstimate:
        await self._require_ready()

        try:
            result = await self._rpc_call(
                "eth_estimateUserOperationGas",
                [user_op.to_rpc_dict(), entry_point],
            )
        except BundlerError as exc:
            raise EstimationRevertedError(exc.message, provider=self.name) from exc
        if not isinstance(result, dict):
            raise BundlerError("Invalid bundler response for eth_estimateUserOperationGas")
        return UserOpGasEstimate.from_rpc(result)

    async def send_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> str:
        await self._require_ready()

        try:
            result = await self._rpc_call(
                "eth_sendUserOperation",
                [user_op.to_rpc_dict(), entry_point],
            )
        except BundlerError as exc:
            # Keep the bundler's wording: it is shown to the user as-is
            raise SubmissionRejectedError(exc.message, provider=self.name) from exc
        if not isinstance(result, str):
            raise SubmissionRejectedError(
                "Invalid bundler response for eth_sendUserOperation", provider=self.name
            )
        logger.info(f"UserOperation accepted by bundler: {result}")
        return result

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOpReceipt]:
        await self._require_ready()

        result = await self._rpc_call(
            "eth_getUserOperationReceipt",
            [user_op_hash],
        )
        if not result:
            return None

        receipt: Dict[str, Any] = result.get("receipt") or {}
        if "success" in result:
            success = bool(result["success"])
        else:
            success = receipt.get("status") == "0x1"
        return UserOpReceipt(
            user_op_hash=user_op_hash,
            success=success,
            transaction_hash=receipt.get("transactionHash"),
            block_number=_parse_int(receipt.get("blockNumber")),
            gas_used=_parse_int(result.get("actualGasUsed") or receipt.get("gasUsed")),
            reason=result.get("reason") or None,
        )
