"""Service layer helpers"""

from .supported_tokens import PaymasterTokenFetcher, SupportedTokenCache, SupportedTokens
from .wallet_session import WalletSession, get_wallet_session

__all__ = [
    "PaymasterTokenFetcher",
    "SupportedTokenCache",
    "SupportedTokens",
    "WalletSession",
    "get_wallet_session",
]
