"""
Supported-Token Cache

Paymaster token list and sponsorship info for the connected account.
Fetched once per account, shared by concurrent callers, retried with
backoff, and pinned as an error once retries are exhausted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..config import Settings, settings as default_settings
from ..core.execution.assembler import build_query_operation
from ..core.paymaster.modes import SponsorshipInfo, SupportedToken
from ..core.recovery import NotReadyError, RetryConfig, RetryPolicy

if TYPE_CHECKING:
    from ..providers.paymaster import PaymasterProvider

logger = logging.getLogger(__name__)

# pm_supported_tokens query types: sponsorship eligibility and token pricing
FREE_GAS_QUERY_TYPE = 0
TOKEN_QUERY_TYPE = 2


@dataclass(frozen=True)
class SupportedTokens:
    tokens: Tuple[SupportedToken, ...]
    sponsorship: SponsorshipInfo
    native: Dict[str, Any] = field(default_factory=dict)

    def find(self, address: str) -> Optional[SupportedToken]:
        for token in self.tokens:
            if token.matches(address):
                return token
        return None


class PaymasterTokenFetcher:
    """Queries the paymaster for an account's fee tokens and free-gas eligibility."""

    def __init__(self, paymaster: "PaymasterProvider", config: Optional[Settings] = None) -> None:
        self.paymaster = paymaster
        self._settings = config or default_settings

    async def fetch(self, account_address: str) -> SupportedTokens:
        query = build_query_operation(account_address)
        entry_point = self._settings.entry_point_address

        free_gas_result, token_result = await asyncio.gather(
            self.paymaster.get_supported_tokens(query, entry_point, FREE_GAS_QUERY_TYPE),
            self.paymaster.get_supported_tokens(query, entry_point, TOKEN_QUERY_TYPE),
            return_exceptions=True,
        )

        if isinstance(token_result, BaseException):
            raise token_result

        if isinstance(free_gas_result, Exception):
            logger.warning(f"Free gas check failed for {account_address}, treating as ineligible: {free_gas_result}")
            free_gas_eligible = False
        elif isinstance(free_gas_result, BaseException):
            raise free_gas_result
        else:
            free_gas_eligible = bool(free_gas_result.get("freeGas"))

        native = token_result.get("native") or {}
        tokens = tuple(SupportedToken.from_rpc(item) for item in token_result.get("tokens") or [])
        logger.info(
            f"Paymaster offers {len(tokens)} fee token(s) to {account_address} "
            f"(free gas: {free_gas_eligible})"
        )
        return SupportedTokens(
            tokens=tokens,
            sponsorship=SponsorshipInfo(
                native_balance=Decimal(str(native.get("price") or 0)),
                free_gas_eligible=free_gas_eligible,
            ),
            native=native,
        )


def _consume_result(task: asyncio.Task) -> None:
    # Failures are re-raised to awaiting callers; mark them retrieved for callers that went away
    if not task.cancelled():
        task.exception()


class SupportedTokenCache:
    """
    Per-account cache of `SupportedTokens`.

    A failure that survives the retry policy is stored and re-raised to
    every caller until `invalidate()` or a switch to another account.
    """

    def __init__(
        self,
        fetcher: PaymasterTokenFetcher,
        retry_policy: Optional[RetryPolicy] = None,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self.fetcher = fetcher
        self.retry_policy = retry_policy or RetryPolicy(
            RetryConfig(
                max_attempts=config.supported_tokens_max_attempts,
                initial_delay_seconds=config.supported_tokens_retry_delay_seconds,
            ),
            logger=logger,
        )
        self._account: Optional[str] = None
        self._entries: Dict[str, SupportedTokens] = {}
        self._errors: Dict[str, Exception] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._generation = 0

    @property
    def account(self) -> Optional[str]:
        return self._account

    def bind_account(self, address: Optional[str]) -> None:
        """Scope the cache to `address`; switching accounts drops everything cached."""
        if (address or "").lower() == (self._account or "").lower():
            return
        self.invalidate()
        self._account = address

    def invalidate(self) -> None:
        self._generation += 1
        self._entries.clear()
        self._errors.clear()
        # Running fetches finish for their current awaiters but no longer write here
        self._inflight.clear()
        logger.debug("Supported-token cache invalidated")

    def peek(self) -> Optional[SupportedTokens]:
        if self._account is None:
            return None
        return self._entries.get(self._account.lower())

    async def get_supported_tokens(self) -> SupportedTokens:
        if self._account is None:
            raise NotReadyError("account", "No account bound to the supported-token cache")

        address = self._account
        key = address.lower()
        cached = self._entries.get(key)
        if cached is not None:
            return cached
        error = self._errors.get(key)
        if error is not None:
            raise error

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, address, self._generation))
            task.add_done_callback(_consume_result)
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _fetch(self, key: str, address: str, generation: int) -> SupportedTokens:
        try:
            result = await self.retry_policy.execute(lambda: self.fetcher.fetch(address))
        except Exception as exc:
            if generation == self._generation:
                logger.error(f"Supported tokens unavailable for {address} after {self.retry_policy.attempts} attempt(s): {exc}")
                self._errors[key] = exc
                self._inflight.pop(key, None)
            raise

        if generation == self._generation:
            self._entries[key] = result
            self._inflight.pop(key, None)
        return result
