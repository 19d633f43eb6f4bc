"""
ABI calldata helpers for smart-account, token and EntryPoint calls.
"""

from __future__ import annotations

import re
from typing import Any, Sequence

from eth_abi import decode, encode
from eth_utils import keccak

MAX_UINT256 = 2**256 - 1

_SIGNATURE_RE = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)\((?P<args>.*)\)$")

ERC20_TRANSFER = "transfer(address,uint256)"
ERC20_APPROVE = "approve(address,uint256)"
ERC20_ALLOWANCE = "allowance(address,address)"
ERC721_TRANSFER_FROM = "transferFrom(address,address,uint256)"
ENTRYPOINT_GET_NONCE = "getNonce(address,uint192)"
ENTRYPOINT_GET_SENDER_ADDRESS = "getSenderAddress(bytes)"
FACTORY_CREATE_ACCOUNT = "createAccount(address,uint256)"
SENDER_ADDRESS_RESULT = "SenderAddressResult(address)"


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def hex_to_bytes(value: str) -> bytes:
    data = strip_0x(value)
    if len(data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    return bytes.fromhex(data)


def selector_from_signature(signature: str) -> str:
    selector = keccak(text=signature)[:4].hex()
    return f"0x{selector}"


def signature_arg_types(signature: str) -> list[str]:
    """Split `name(type1,type2)` into its argument types (tuple types unsupported)."""
    match = _SIGNATURE_RE.match(signature.replace(" ", ""))
    if not match:
        raise ValueError(f"Invalid function signature: {signature}")
    args = match.group("args")
    if "(" in args:
        raise ValueError(f"Tuple arguments are not supported: {signature}")
    return [arg for arg in args.split(",") if arg]


def encode_function_call(signature: str, args: Sequence[Any] = ()) -> str:
    """ABI-encode a call to `signature` with positional `args`."""
    arg_types = signature_arg_types(signature)
    if len(arg_types) != len(args):
        raise ValueError(
            f"{signature} expects {len(arg_types)} arguments, got {len(args)}"
        )
    return selector_from_signature(signature) + encode(arg_types, list(args)).hex()


def build_execute_call_data(
    to_address: str,
    value_wei: int,
    data: str,
    *,
    signature: str = "execute(address,uint256,bytes)",
) -> str:
    """
    Build calldata for the account's single-call execute(address,uint256,bytes).
    """
    return encode_function_call(signature, [to_address, value_wei, hex_to_bytes(data)])


def build_execute_batch_call_data(
    targets: Sequence[str],
    values: Sequence[int],
    datas: Sequence[str],
    *,
    signature: str = "executeBatch(address[],bytes[])",
) -> str:
    """
    Build calldata for executeBatch.

    Supports both the two-argument SimpleAccount form and the
    executeBatch(address[],uint256[],bytes[]) form.
    """
    payloads = [hex_to_bytes(data) for data in datas]
    arg_types = signature_arg_types(signature)
    if len(arg_types) == 3:
        return encode_function_call(signature, [list(targets), list(values), payloads])
    if len(arg_types) == 2:
        return encode_function_call(signature, [list(targets), payloads])
    raise ValueError(f"Unsupported batch signature: {signature}")


def batch_signature_carries_values(signature: str) -> bool:
    return len(signature_arg_types(signature)) == 3


def build_entrypoint_get_nonce_call(sender: str, key: int = 0) -> str:
    """
    Build calldata for EntryPoint.getNonce(address,uint192).
    """
    return encode_function_call(ENTRYPOINT_GET_NONCE, [sender, key])


def build_get_sender_address_call(init_code: str) -> str:
    return encode_function_call(ENTRYPOINT_GET_SENDER_ADDRESS, [hex_to_bytes(init_code)])


def build_init_code(factory_address: str, owner: str, salt: int = 0) -> str:
    """initCode = factory address ++ createAccount(owner, salt)."""
    create_call = encode_function_call(FACTORY_CREATE_ACCOUNT, [owner, salt])
    return factory_address.lower() + strip_0x(create_call)


def decode_sender_address_revert(revert_data: str) -> str:
    """Extract the address from a SenderAddressResult(address) revert."""
    selector = selector_from_signature(SENDER_ADDRESS_RESULT)
    if not revert_data or not revert_data.lower().startswith(selector):
        raise ValueError(f"Unexpected getSenderAddress revert data: {revert_data!r}")
    (address,) = decode(["address"], hex_to_bytes(revert_data)[4:])
    return address


def decode_uint256(result: str) -> int:
    if not result or result == "0x":
        return 0
    return int(result, 16)
