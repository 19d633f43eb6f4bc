"""
Paymaster modes, resolution and fee-token allowance.
"""

from .allowance import APPROVAL_THRESHOLD, PaymasterAllowance
from .modes import (
    FreeGas,
    Native,
    PaymasterMode,
    PostFundToken,
    PreFundToken,
    ResolvedMode,
    SponsorshipInfo,
    SupportedToken,
    TOKEN_MODES,
    mode_name,
)
from .resolver import find_token, resolve_mode

__all__ = [
    "APPROVAL_THRESHOLD",
    "PaymasterAllowance",
    "FreeGas",
    "Native",
    "PaymasterMode",
    "PostFundToken",
    "PreFundToken",
    "ResolvedMode",
    "SponsorshipInfo",
    "SupportedToken",
    "TOKEN_MODES",
    "mode_name",
    "find_token",
    "resolve_mode",
]
