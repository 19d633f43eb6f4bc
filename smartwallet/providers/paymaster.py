"""
ERC-4337 Paymaster Provider (NERO-style `pm_*` JSON-RPC).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import JsonRpcProvider, RpcError
from ..config import Settings, settings as default_settings
from ..core.execution.models import UserOperation
from ..core.recovery import NotReadyError, SubmissionRejectedError

logger = logging.getLogger(__name__)


class PaymasterError(RpcError):
    """Paymaster provider error."""
    provider = "paymaster"


@dataclass
class PaymasterSponsorship:
    """
    Result of `pm_sponsor_userop`.

    The paymaster signs over the gas fields it returns, so any value present
    here must replace the operation's own before signing.
    """
    paymaster_and_data: str
    call_gas_limit: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    pre_verification_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Any) -> "PaymasterSponsorship":
        if isinstance(data, str):
            return cls(paymaster_and_data=data)
        if not isinstance(data, dict):
            raise PaymasterError("Invalid paymaster response")

        paymaster_and_data = data.get("paymasterAndData") or data.get("paymaster_and_data")
        if not paymaster_and_data:
            raise PaymasterError("Paymaster response is missing paymasterAndData")

        def parse(key: str) -> Optional[int]:
            value = data.get(key)
            if value is None or value == "":
                return None
            if isinstance(value, int):
                return value
            return int(value, 16) if str(value).startswith("0x") else int(value)

        return cls(
            paymaster_and_data=paymaster_and_data,
            call_gas_limit=parse("callGasLimit"),
            verification_gas_limit=parse("verificationGasLimit"),
            pre_verification_gas=parse("preVerificationGas"),
            max_fee_per_gas=parse("maxFeePerGas"),
            max_priority_fee_per_gas=parse("maxPriorityFeePerGas"),
        )

    def apply_to(self, user_op: UserOperation) -> None:
        user_op.paymaster_and_data = self.paymaster_and_data
        for field_name in (
            "call_gas_limit",
            "verification_gas_limit",
            "pre_verification_gas",
            "max_fee_per_gas",
            "max_priority_fee_per_gas",
        ):
            value = getattr(self, field_name)
            if value is not None:
                setattr(user_op, field_name, value)


class PaymasterProvider(JsonRpcProvider):
    name = "paymaster"
    timeout_s = 20
    error_class = PaymasterError

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = config or default_settings
        super().__init__(self._settings.paymaster_url, client, self._settings.request_timeout_seconds)

    async def ready(self) -> bool:
        return bool(self.rpc_url and self._settings.paymaster_api_key)

    async def _require_ready(self) -> None:
        if not await self.ready():
            raise NotReadyError("paymaster", "Paymaster provider is not configured")

    def _params(
        self,
        user_op: UserOperation,
        entry_point: str,
        context: Dict[str, Any],
    ) -> list[Any]:
        return [user_op.to_rpc_dict(), self._settings.paymaster_api_key, entry_point, context]

    async def get_supported_tokens(
        self,
        user_op: UserOperation,
        entry_point: str,
        paymaster_type: int,
    ) -> Dict[str, Any]:
        """
        Query `pm_supported_tokens` for the given query operation.

        Returns the raw response: `{freeGas, native, tokens: [...]}`.
        """
        await self._require_ready()

        result = await self._rpc_call(
            "pm_supported_tokens",
            self._params(user_op, entry_point, {"type": str(paymaster_type)}),
        )
        if not isinstance(result, dict):
            raise PaymasterError("Invalid paymaster response for pm_supported_tokens")
        return result

    async def sponsor_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
        paymaster_type: int,
        token: Optional[str] = None,
    ) -> PaymasterSponsorship:
        await self._require_ready()

        context: Dict[str, Any] = {"type": str(paymaster_type)}
        if token:
            context["token"] = token
        try:
            result = await self._rpc_call(
                "pm_sponsor_userop",
                self._params(user_op, entry_point, context),
            )
        except PaymasterError as exc:
            raise SubmissionRejectedError(exc.message, provider=self.name) from exc

        sponsorship = PaymasterSponsorship.from_rpc(result)
        logger.debug(f"Paymaster sponsored operation for {user_op.sender} (type {paymaster_type})")
        return sponsorship
