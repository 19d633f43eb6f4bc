"""
Fee estimation for UserOperation previews.

Estimation never signs, sponsors or submits anything; calling it twice with
the same inputs and the same bundler answer yields the same quote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal, localcontext
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from ...config import Settings, settings as default_settings
from ..execution.account import SmartAccount
from ..execution.assembler import OperationAssembler, apply_safety_multipliers
from ..execution.builder import format_units
from ..execution.models import OperationDraft, UserOpGasEstimate
from ..paymaster.modes import ResolvedMode, SupportedToken
from ..recovery import EstimationRevertedError, InvalidParameterError
from .gas_config import DEFAULT_GAS_CONFIG, GasConfig

if TYPE_CHECKING:
    from ...providers.bundler import BundlerProvider

logger = logging.getLogger(__name__)


class QuoteKind(str, Enum):
    ESTIMATED = "estimated"      # Bundler estimate converted to the fee token
    SPONSORED = "sponsored"      # Paymaster covers the fee; amount is what it pays
    APPROXIMATE = "approximate"  # Estimation reverted; amount is a placeholder
    NOT_READY = "not_ready"      # No account or provider yet; amount is zero


@dataclass(frozen=True)
class FeeQuote:
    amount: str
    kind: QuoteKind
    fee_token_symbol: str
    fee_token_address: Optional[str] = None
    decimals: int = 18
    gas: Optional[UserOpGasEstimate] = None
    max_fee_per_gas: Optional[int] = None
    native_cost_wei: Optional[int] = None
    error: Optional[str] = None

    @property
    def user_pays(self) -> bool:
        return self.kind in (QuoteKind.ESTIMATED, QuoteKind.APPROXIMATE)

    @classmethod
    def not_ready(cls, symbol: str, fee_token_address: Optional[str] = None) -> "FeeQuote":
        return cls(
            amount="0",
            kind=QuoteKind.NOT_READY,
            fee_token_symbol=symbol,
            fee_token_address=fee_token_address,
        )

    @classmethod
    def approximate(
        cls,
        amount: Decimal,
        symbol: str,
        reason: str,
        fee_token_address: Optional[str] = None,
    ) -> "FeeQuote":
        return cls(
            amount=str(amount),
            kind=QuoteKind.APPROXIMATE,
            fee_token_symbol=symbol,
            fee_token_address=fee_token_address,
            error=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "kind": self.kind.value,
            "symbol": self.fee_token_symbol,
            "token": self.fee_token_address,
            "nativeCostWei": self.native_cost_wei,
            "error": self.error,
        }


def native_to_token_amount(native_cost_wei: int, native_decimals: int, token: SupportedToken) -> Decimal:
    """Convert a native-wei cost to whole `token` units, rounded up to the token's decimals."""
    if token.price <= 0:
        raise InvalidParameterError("price", f"Paymaster price for {token.symbol} is not positive", token.price)
    with localcontext() as ctx:
        ctx.prec = 100
        native_amount = Decimal(native_cost_wei).scaleb(-native_decimals)
        quantum = Decimal(1).scaleb(-token.decimals)
        return (native_amount / token.price).quantize(quantum, rounding=ROUND_CEILING)


def _format_decimal(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    return text if "." in text else f"{text}.0"


class FeeEstimator:
    """Quotes the cost of a draft in the fee token of a resolved paymaster mode."""

    def __init__(
        self,
        assembler: OperationAssembler,
        bundler: "BundlerProvider",
        config: Optional[Settings] = None,
        gas_config: Optional[GasConfig] = None,
    ) -> None:
        self.assembler = assembler
        self.bundler = bundler
        self.gas_config = gas_config or DEFAULT_GAS_CONFIG
        self._settings = config or default_settings

    def _fee_symbol(self, resolved: ResolvedMode) -> str:
        return resolved.token.symbol if resolved.token else self._settings.native_token_symbol

    async def _providers_ready(self) -> bool:
        return await self.bundler.ready() and await self.assembler.node.ready()

    async def estimate_fee(
        self,
        account: Optional[SmartAccount],
        draft: OperationDraft,
        resolved: ResolvedMode,
    ) -> FeeQuote:
        """
        Estimate the fee of `draft` when paid according to `resolved`.

        Returns a NOT_READY quote without network calls when no account is
        connected or the bundler or node is not configured, and an APPROXIMATE
        placeholder when the preview reverts.
        Transport failures propagate as `NetworkError`.
        """
        if draft.is_empty:
            raise InvalidParameterError("calls", "Operation must contain at least one call")
        if account is None or not account.is_ready or not await self._providers_ready():
            return FeeQuote.not_ready(self._fee_symbol(resolved), resolved.token_address)

        user_op = await self.assembler.build(account, draft)
        try:
            estimate = await self.bundler.estimate_user_operation_gas(
                user_op, self._settings.entry_point_address
            )
        except EstimationRevertedError as exc:
            logger.warning(f"Fee estimation reverted for {account.address}: {exc.reason}")
            return FeeQuote.approximate(
                self._settings.fee_estimate_fallback,
                self._fee_symbol(resolved),
                exc.reason,
                resolved.token_address,
            )

        padded = apply_safety_multipliers(estimate, resolved.is_token_mode)
        user_op.apply_gas_estimate(padded)
        self.gas_config.apply(user_op)
        cost_wei = user_op.max_cost_wei

        if resolved.is_token_mode and resolved.token is not None:
            token = resolved.token
            amount = _format_decimal(
                native_to_token_amount(cost_wei, self._settings.native_token_decimals, token)
            )
            symbol, token_address, decimals = token.symbol, token.token_address, token.decimals
        else:
            amount = format_units(cost_wei, self._settings.native_token_decimals)
            symbol = self._settings.native_token_symbol
            token_address, decimals = None, self._settings.native_token_decimals

        return FeeQuote(
            amount=amount,
            kind=QuoteKind.SPONSORED if resolved.is_sponsored else QuoteKind.ESTIMATED,
            fee_token_symbol=symbol,
            fee_token_address=token_address,
            decimals=decimals,
            gas=UserOpGasEstimate(
                call_gas_limit=user_op.call_gas_limit,
                verification_gas_limit=user_op.verification_gas_limit,
                pre_verification_gas=user_op.pre_verification_gas,
            ),
            max_fee_per_gas=user_op.max_fee_per_gas,
            native_cost_wei=cost_wei,
        )


class FeeQuoteFeed:
    """
    Latest-wins wrapper around `FeeEstimator` for previews that re-estimate
    on every input change. A result overtaken by a newer request is dropped.
    """

    def __init__(self, estimator: FeeEstimator) -> None:
        self.estimator = estimator
        self.latest: Optional[FeeQuote] = None
        self._generation = 0

    async def refresh(
        self,
        account: Optional[SmartAccount],
        draft: OperationDraft,
        resolved: ResolvedMode,
    ) -> Optional[FeeQuote]:
        self._generation += 1
        generation = self._generation
        quote = await self.estimator.estimate_fee(account, draft, resolved)
        if generation != self._generation:
            logger.debug("Discarding superseded fee quote")
            return None
        self.latest = quote
        return quote
