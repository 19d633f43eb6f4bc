"""
Wallet Session.

Entry point for host applications: owns the providers, the connected smart
account, the supported-token cache and the user's gas configuration, and
wires them into estimation and submission.

Typical flow:
- connect(signer) resolves the counterfactual account
- resolve(mode) validates gas payment against the paymaster's offer
- estimate_fee(draft, mode) previews the cost, as often as inputs change
- send(draft, mode) signs, submits and waits for the receipt
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from ..config import Settings, settings as default_settings
from ..core.execution.account import SmartAccount, Signer
from ..core.execution.assembler import OperationAssembler
from ..core.execution.models import OperationDraft, SubmissionResult
from ..core.execution.state_machine import UserOperationStateMachine
from ..core.fees import FeeEstimator, FeeQuote, GasConfig
from ..core.paymaster import (
    FreeGas,
    Native,
    PaymasterAllowance,
    PaymasterMode,
    ResolvedMode,
    SponsorshipInfo,
    resolve_mode,
)
from ..core.recovery import InvalidParameterError, NotReadyError
from ..providers.bundler import BundlerProvider
from ..providers.node import NodeProvider
from ..providers.paymaster import PaymasterProvider
from .supported_tokens import PaymasterTokenFetcher, SupportedTokenCache, SupportedTokens

logger = logging.getLogger(__name__)


class WalletSession:
    """One user's smart-account session against a bundler, paymaster and node."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        node: Optional[NodeProvider] = None,
        bundler: Optional[BundlerProvider] = None,
        paymaster: Optional[PaymasterProvider] = None,
        gas_config: Optional[GasConfig] = None,
        token_cache: Optional[SupportedTokenCache] = None,
    ) -> None:
        self.settings = config or default_settings
        self.node = node or NodeProvider(self.settings)
        self.bundler = bundler or BundlerProvider(self.settings)
        self.paymaster = paymaster or PaymasterProvider(self.settings)

        self.assembler = OperationAssembler(self.node, self.settings)
        self.estimator = FeeEstimator(self.assembler, self.bundler, self.settings, gas_config)
        self.allowance = PaymasterAllowance(self.node, self.settings)
        self.token_cache = token_cache or SupportedTokenCache(
            PaymasterTokenFetcher(self.paymaster, self.settings),
            config=self.settings,
        )
        self.account: Optional[SmartAccount] = None
        self._signer: Optional[Signer] = None

    @property
    def gas_config(self) -> GasConfig:
        return self.estimator.gas_config

    def set_gas_config(self, gas_config: GasConfig) -> None:
        self.estimator.gas_config = gas_config

    @property
    def is_connected(self) -> bool:
        return self.account is not None and self.account.is_ready

    def _require_account(self) -> SmartAccount:
        if self.account is None or not self.account.is_ready:
            raise NotReadyError("account", "Connect a signer first")
        return self.account

    async def connect(self, signer: Signer, index: int = 0) -> SmartAccount:
        account = await SmartAccount.create(signer, self.node, self.settings, index=index)
        self._signer = signer
        self._bind(account)
        return account

    def _bind(self, account: Optional[SmartAccount]) -> None:
        self.account = account
        self.token_cache.bind_account(account.address if account is not None else None)

    async def switch_account(self, index: int) -> SmartAccount:
        """
        Make the owner's account at `index` the active one.

        Supported tokens and sponsorship are per account, so the token cache
        is rebound and refetches on next use.
        """
        current = self._require_account()
        if index == current.index:
            return current
        account = await SmartAccount.create(self._signer, self.node, self.settings, index=index)
        logger.info(f"Switching smart account {current.address} -> {account.address}")
        self._bind(account)
        return account

    async def discover_accounts(self, count: int) -> List[SmartAccount]:
        """Derive the owner's first `count` accounts without changing the active one."""
        if count < 1:
            raise InvalidParameterError("count", f"Account count must be positive, got {count}")
        self._require_account()
        return [
            await SmartAccount.create(self._signer, self.node, self.settings, index=index)
            for index in range(count)
        ]

    def disconnect(self) -> None:
        self._signer = None
        self._bind(None)

    async def get_supported_tokens(self) -> SupportedTokens:
        self._require_account()
        return await self.token_cache.get_supported_tokens()

    async def resolve(self, mode: PaymasterMode) -> ResolvedMode:
        """Validate `mode` for the connected account. Native needs no paymaster data."""
        if isinstance(mode, Native):
            return resolve_mode(mode, SponsorshipInfo(), ())
        supported = await self.get_supported_tokens()
        return resolve_mode(mode, supported.sponsorship, supported.tokens)

    async def estimate_fee(
        self,
        draft: OperationDraft,
        mode: Union[PaymasterMode, ResolvedMode],
    ) -> FeeQuote:
        if draft.is_empty:
            raise InvalidParameterError("calls", "Operation must contain at least one call")
        if not self.is_connected:
            return self._not_ready_quote(mode)
        resolved = mode if isinstance(mode, ResolvedMode) else await self.resolve(mode)
        return await self.estimator.estimate_fee(self.account, draft, resolved)

    def _not_ready_quote(self, mode: Union[PaymasterMode, ResolvedMode]) -> FeeQuote:
        resolved = mode if isinstance(mode, ResolvedMode) else ResolvedMode(mode=mode)
        if resolved.token is not None:
            return FeeQuote.not_ready(resolved.token.symbol, resolved.token.token_address)
        requested_token = resolved.mode.token
        if requested_token is not None:
            # Token metadata needs a connected account, so the address stands in for the symbol
            return FeeQuote.not_ready(requested_token, requested_token)
        return FeeQuote.not_ready(self.settings.native_token_symbol)

    def new_operation(self, draft: OperationDraft, resolved: ResolvedMode) -> UserOperationStateMachine:
        return UserOperationStateMachine(
            draft=draft,
            resolved=resolved,
            account=self.account,
            assembler=self.assembler,
            bundler=self.bundler,
            paymaster=self.paymaster,
            config=self.settings,
            gas_config=self.gas_config,
        )

    async def send(
        self,
        draft: OperationDraft,
        mode: Union[PaymasterMode, ResolvedMode],
        timeout: Optional[float] = None,
    ) -> SubmissionResult:
        """
        Resolve, submit and confirm `draft` in one call.

        Token modes first make sure the token paymaster may spend the fee
        token. A failed approval is logged and the operation is still sent;
        the paymaster then reports the missing allowance itself.
        """
        if draft.is_empty:
            raise InvalidParameterError("calls", "Operation must contain at least one call")
        self._require_account()
        resolved = mode if isinstance(mode, ResolvedMode) else await self.resolve(mode)
        if resolved.is_token_mode and resolved.token_address:
            try:
                await self.ensure_paymaster_approval(resolved.token_address, timeout)
            except Exception as exc:
                logger.warning(f"Paymaster approval of {resolved.token_address} failed, sending anyway: {exc}")
        machine = self.new_operation(draft, resolved)
        await machine.confirm()
        return await machine.wait(timeout)

    async def ensure_paymaster_approval(
        self,
        token_address: str,
        timeout: Optional[float] = None,
    ) -> Optional[SubmissionResult]:
        """
        Grant the token paymaster an unlimited allowance of `token_address`
        when the current one is below half of it.

        The approval is its own sponsored operation, separate from any user
        draft. Returns None when no approval was needed.
        """
        account = self._require_account()
        call = await self.allowance.approval_call_if_needed(token_address, account.address)
        if call is None:
            return None

        logger.info(f"Approving token paymaster to spend {token_address} for {account.address}")
        # The paymaster sponsors approvals of its own fee tokens regardless of free-gas eligibility
        machine = self.new_operation(OperationDraft([call]), ResolvedMode(mode=FreeGas()))
        await machine.confirm()
        return await machine.wait(timeout)

    async def close(self) -> None:
        await self.node.close()
        await self.bundler.close()
        await self.paymaster.close()


_wallet_session: Optional[WalletSession] = None


def get_wallet_session() -> WalletSession:
    global _wallet_session
    if _wallet_session is None:
        _wallet_session = WalletSession()
    return _wallet_session
