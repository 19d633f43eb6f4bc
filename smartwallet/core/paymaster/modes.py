"""
Paymaster modes and supported-token models.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from eth_utils import to_checksum_address


@dataclass(frozen=True)
class FreeGas:
    """Gas is sponsored by the paymaster; the user pays nothing."""

    @property
    def code(self) -> int:
        return 0

    @property
    def token(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class PreFundToken:
    """Gas paid in `token`, charged before execution."""
    token: str

    @property
    def code(self) -> int:
        return 1


@dataclass(frozen=True)
class PostFundToken:
    """Gas paid in `token`, charged after execution."""
    token: str

    @property
    def code(self) -> int:
        return 2


@dataclass(frozen=True)
class Native:
    """Account pays gas in the chain's native currency, no paymaster."""

    @property
    def code(self) -> int:
        return 4

    @property
    def token(self) -> Optional[str]:
        return None


PaymasterMode = Union[FreeGas, PreFundToken, PostFundToken, Native]

TOKEN_MODES = (PreFundToken, PostFundToken)


def mode_name(mode: PaymasterMode) -> str:
    return type(mode).__name__


@dataclass(frozen=True)
class SponsorshipInfo:
    """Per-account sponsorship state reported by the paymaster."""
    native_balance: Decimal = Decimal(0)
    free_gas_eligible: bool = False


@dataclass(frozen=True)
class SupportedToken:
    """
    ERC-20 token the paymaster accepts for gas.

    `price` is the paymaster's exchange rate: native units per whole token.
    """
    token_address: str
    symbol: str
    decimals: int
    price: Decimal
    type: Optional[str] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "SupportedToken":
        return cls(
            token_address=to_checksum_address(data["token"]),
            symbol=str(data.get("symbol") or ""),
            decimals=int(data.get("decimals", 18)),
            price=Decimal(str(data.get("price") or 0)),
            type=str(data["type"]) if data.get("type") is not None else None,
        )

    def matches(self, address: str) -> bool:
        return self.token_address.lower() == address.lower()


@dataclass(frozen=True)
class ResolvedMode:
    """
    A paymaster mode validated against the account's sponsorship and token list.

    Carries everything estimation and submission need to know about gas payment.
    """
    mode: PaymasterMode
    token: Optional[SupportedToken] = None

    @property
    def code(self) -> int:
        return self.mode.code

    @property
    def uses_paymaster(self) -> bool:
        return not isinstance(self.mode, Native)

    @property
    def is_sponsored(self) -> bool:
        return isinstance(self.mode, FreeGas)

    @property
    def is_token_mode(self) -> bool:
        return isinstance(self.mode, TOKEN_MODES)

    @property
    def token_address(self) -> Optional[str]:
        return self.token.token_address if self.token else None
