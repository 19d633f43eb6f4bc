"""
ERC-4337 UserOperation models and helpers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from eth_abi import encode
from eth_utils import keccak, to_checksum_address


# Placeholder signature bundlers accept for estimation (valid ECDSA shape, never a real key)
DUMMY_SIGNATURE = (
    "0xfffffffffffffffffffffffffffffff0000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)


def _to_hex(value: int) -> str:
    return hex(value)


def _hex_bytes(value: str) -> bytes:
    stripped = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(stripped)


class CallKind(str, Enum):
    """Typed intents the builder turns into contract calls."""
    NATIVE_TRANSFER = "native_transfer"
    ERC20_TRANSFER = "erc20_transfer"
    ERC721_TRANSFER = "erc721_transfer"
    RAW_CALL = "raw_call"


@dataclass(frozen=True)
class ContractCall:
    """One call executed by the smart account."""
    target_address: str
    value: int
    call_data: str = "0x"
    kind: CallKind = CallKind.RAW_CALL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to": self.target_address,
            "value": _to_hex(self.value),
            "data": self.call_data,
            "kind": self.kind.value,
        }


class OperationDraft:
    """
    Ordered batch of calls for a single UserOperation.

    The order of `calls` is the on-chain execution order and is never changed.
    """

    def __init__(self, calls: Optional[Iterable[ContractCall]] = None) -> None:
        self._calls: List[ContractCall] = list(calls or [])

    @property
    def calls(self) -> List[ContractCall]:
        return list(self._calls)

    @property
    def is_empty(self) -> bool:
        return not self._calls

    @property
    def total_value(self) -> int:
        return sum(call.value for call in self._calls)

    def add(self, call: ContractCall) -> "OperationDraft":
        self._calls.append(call)
        return self

    def clear(self) -> None:
        self._calls.clear()

    def __len__(self) -> int:
        return len(self._calls)

    def __getitem__(self, index: int) -> ContractCall:
        return self._calls[index]

    def __iter__(self) -> Iterator[ContractCall]:
        return iter(list(self._calls))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OperationDraft):
            return NotImplemented
        return self._calls == other._calls

    def __repr__(self) -> str:
        return f"OperationDraft(calls={self._calls!r})"


@dataclass
class UserOperation:
    """
    ERC-4337 (EntryPoint v0.6) UserOperation payload.

    Values should be supplied in raw units (wei / gas units) and are encoded
    as hex for RPC calls.
    """
    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str = "0x"
    signature: str = "0x"

    @property
    def total_gas(self) -> int:
        return self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas

    @property
    def max_cost_wei(self) -> int:
        return self.total_gas * self.max_fee_per_gas

    def to_rpc_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "nonce": _to_hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": _to_hex(self.call_gas_limit),
            "verificationGasLimit": _to_hex(self.verification_gas_limit),
            "preVerificationGas": _to_hex(self.pre_verification_gas),
            "maxFeePerGas": _to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }

    def apply_gas_estimate(self, estimate: "UserOpGasEstimate") -> None:
        self.call_gas_limit = estimate.call_gas_limit
        self.verification_gas_limit = estimate.verification_gas_limit
        self.pre_verification_gas = estimate.pre_verification_gas

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """userOpHash as computed by EntryPoint v0.6 `getUserOpHash`."""
        packed = encode(
            [
                "address", "uint256", "bytes32", "bytes32", "uint256",
                "uint256", "uint256", "uint256", "uint256", "bytes32",
            ],
            [
                to_checksum_address(self.sender),
                self.nonce,
                keccak(_hex_bytes(self.init_code)),
                keccak(_hex_bytes(self.call_data)),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                keccak(_hex_bytes(self.paymaster_and_data)),
            ],
        )
        return keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(packed), to_checksum_address(entry_point), chain_id],
            )
        )


@dataclass
class UserOpGasEstimate:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    paymaster_verification_gas_limit: Optional[int] = None
    paymaster_post_op_gas_limit: Optional[int] = None

    @property
    def total_gas(self) -> int:
        return self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOpGasEstimate":
        def parse_hex(value: Optional[Any]) -> Optional[int]:
            if value is None:
                return None
            if isinstance(value, int):
                return value
            return int(value, 16) if str(value).startswith("0x") else int(value)

        return cls(
            call_gas_limit=parse_hex(data.get("callGasLimit")) or 0,
            verification_gas_limit=parse_hex(data.get("verificationGasLimit")) or 0,
            pre_verification_gas=parse_hex(data.get("preVerificationGas")) or 0,
            paymaster_verification_gas_limit=parse_hex(data.get("paymasterVerificationGasLimit")),
            paymaster_post_op_gas_limit=parse_hex(data.get("paymasterPostOpGasLimit")),
        )


@dataclass
class UserOpReceipt:
    user_op_hash: str
    success: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class SubmissionResult:
    """Outcome of a submission; `transaction_hash` is filled once confirmed."""
    user_op_hash: str
    transaction_hash: Optional[str] = None
    receipt: Optional[UserOpReceipt] = None

    @property
    def is_confirmed(self) -> bool:
        return self.transaction_hash is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userOpHash": self.user_op_hash,
            "transactionHash": self.transaction_hash,
        }


@dataclass
class FeeData:
    """EIP-1559 fee fields for a UserOperation."""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
