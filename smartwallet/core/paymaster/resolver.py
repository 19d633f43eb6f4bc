"""
Paymaster mode resolution.
"""

from __future__ import annotations

from typing import Sequence

from ..recovery import UnsupportedModeError, UnsupportedTokenError
from .modes import (
    FreeGas,
    Native,
    PaymasterMode,
    ResolvedMode,
    SponsorshipInfo,
    SupportedToken,
    TOKEN_MODES,
    mode_name,
)


def find_token(tokens: Sequence[SupportedToken], address: str) -> SupportedToken | None:
    for token in tokens:
        if token.matches(address):
            return token
    return None


def resolve_mode(
    requested: PaymasterMode,
    sponsorship: SponsorshipInfo,
    supported_tokens: Sequence[SupportedToken],
) -> ResolvedMode:
    """
    Validate `requested` against what the paymaster offers this account.

    Raises:
        UnsupportedModeError: free gas requested by an ineligible account
        UnsupportedTokenError: fee token not in the paymaster's list
    """
    if isinstance(requested, Native):
        return ResolvedMode(mode=requested)

    if isinstance(requested, FreeGas):
        if not sponsorship.free_gas_eligible:
            raise UnsupportedModeError(
                mode_name(requested),
                "Free gas is not available for this account",
            )
        return ResolvedMode(mode=requested)

    if isinstance(requested, TOKEN_MODES):
        token = find_token(supported_tokens, requested.token)
        if token is None:
            raise UnsupportedTokenError(requested.token)
        return ResolvedMode(mode=requested, token=token)

    raise UnsupportedModeError(repr(requested), f"Unknown paymaster mode: {requested!r}")
