"""
Smart account and owner signer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

from ...config import Settings, settings as default_settings
from ..recovery import InvalidParameterError
from .encoding import build_init_code

if TYPE_CHECKING:
    from ...providers.node import NodeProvider

logger = logging.getLogger(__name__)


class Signer(ABC):
    """Owner key of a smart account. Signing itself is opaque to the pipeline."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Owner EOA address"""
        pass

    @abstractmethod
    async def sign_user_op_hash(self, user_op_hash: bytes) -> str:
        """Return the hex signature the account's validateUserOp accepts for `user_op_hash`"""
        pass


class LocalAccountSigner(Signer):
    """
    Signer backed by an in-process private key.

    SimpleAccount verifies an EIP-191 personal signature of the userOpHash.
    """

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_user_op_hash(self, user_op_hash: bytes) -> str:
        signed = self._account.sign_message(encode_defunct(primitive=user_op_hash))
        return "0x" + bytes(signed.signature).hex()


@dataclass
class SmartAccount:
    """
    Counterfactual SimpleAccount owned by `signer`.

    One owner controls a family of accounts; `index` offsets the factory
    salt from the configured base salt.
    """
    address: str
    signer: Optional[Signer]
    init_code: str
    index: int = 0

    @classmethod
    async def create(
        cls,
        signer: Signer,
        node: "NodeProvider",
        config: Optional[Settings] = None,
        index: int = 0,
    ) -> "SmartAccount":
        if index < 0:
            raise InvalidParameterError("index", f"Account index must be non-negative, got {index}")
        config = config or default_settings
        init_code = build_init_code(
            config.account_factory_address,
            signer.address,
            config.account_salt + index,
        )
        address = to_checksum_address(await node.get_sender_address(init_code))
        logger.info(f"Smart account {address} (index {index}) resolved for owner {signer.address}")
        return cls(address=address, signer=signer, init_code=init_code, index=index)

    @property
    def is_ready(self) -> bool:
        return self.signer is not None and bool(self.address)

    def init_code_for(self, nonce: int) -> str:
        """Deployment code is only sent with the account's first operation."""
        return self.init_code if nonce == 0 else "0x"
