"""
Operation Builder.

Turns typed intents (native transfer, ERC-20 transfer, ERC-721 transfer,
raw dApp call) into `ContractCall`s and batches them into an
`OperationDraft`. Pure data assembly: nothing here touches the network.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Iterable, Optional, Sequence

from eth_utils import is_address, to_checksum_address

from ..recovery import InvalidParameterError
from .encoding import (
    ERC20_TRANSFER,
    ERC721_TRANSFER_FROM,
    batch_signature_carries_values,
    build_execute_batch_call_data,
    build_execute_call_data,
    encode_function_call,
    hex_to_bytes,
)
from .models import CallKind, ContractCall, OperationDraft

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def validate_address(value: Any, field: str) -> str:
    """Return `value` in checksum form; reject malformed, zero or bad-checksum input."""
    if not isinstance(value, str) or not is_address(value):
        raise InvalidParameterError(field, f"'{field}' is not a valid address: {value!r}", value)
    if int(value, 16) == 0:
        raise InvalidParameterError(field, f"'{field}' must not be the zero address", value)
    return to_checksum_address(value)


def parse_units(amount: Any, decimals: int, field: str = "amount") -> int:
    """Convert a human decimal amount into raw integer units (ethers `parseUnits`)."""
    if isinstance(amount, bool) or amount is None:
        raise InvalidParameterError(field, f"'{field}' is required", amount)
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidParameterError(field, f"'{field}' is not a number: {amount!r}", amount) from None
    if not value.is_finite():
        raise InvalidParameterError(field, f"'{field}' is not a number: {amount!r}", amount)

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise InvalidParameterError(
                field, f"'{field}' has more than {decimals} decimal places", amount
            )
        return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """Exact decimal rendering of raw units (ethers `formatUnits`): 1500000 @ 6 -> '1.5'."""
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}.0"
    fraction_digits = str(fraction).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{fraction_digits}"


def _positive_units(params: dict, decimals: int) -> int:
    raw = parse_units(params.get("amount"), decimals)
    if raw <= 0:
        raise InvalidParameterError("amount", "'amount' must be positive", params.get("amount"))
    return raw


def _decimals(params: dict) -> int:
    decimals = params.get("decimals", 18)
    try:
        decimals = int(decimals)
    except (TypeError, ValueError):
        raise InvalidParameterError("decimals", f"'decimals' is not an integer: {decimals!r}", decimals) from None
    if decimals < 0 or decimals > 77:
        raise InvalidParameterError("decimals", "'decimals' must be between 0 and 77", decimals)
    return decimals


def _build_native_transfer(params: dict) -> ContractCall:
    to = validate_address(params.get("to"), "to")
    value = _positive_units(params, _decimals(params))
    return ContractCall(target_address=to, value=value, call_data="0x", kind=CallKind.NATIVE_TRANSFER)


def _build_erc20_transfer(params: dict) -> ContractCall:
    token = validate_address(params.get("token_address"), "token_address")
    to = validate_address(params.get("to"), "to")
    amount = _positive_units(params, _decimals(params))
    return ContractCall(
        target_address=token,
        value=0,
        call_data=encode_function_call(ERC20_TRANSFER, [to, amount]),
        kind=CallKind.ERC20_TRANSFER,
    )


def _build_erc721_transfer(params: dict) -> ContractCall:
    contract = validate_address(params.get("contract_address"), "contract_address")
    sender = validate_address(params.get("from_address"), "from_address")
    to = validate_address(params.get("to"), "to")
    token_id = params.get("token_id")
    if isinstance(token_id, bool) or not isinstance(token_id, int) or token_id <= 0:
        raise InvalidParameterError("token_id", "'token_id' must be a positive integer", token_id)
    return ContractCall(
        target_address=contract,
        value=0,
        call_data=encode_function_call(ERC721_TRANSFER_FROM, [sender, to, token_id]),
        kind=CallKind.ERC721_TRANSFER,
    )


def _build_raw_call(params: dict) -> ContractCall:
    target = validate_address(params.get("target_address"), "target_address")

    value = params.get("value", 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidParameterError("value", "'value' must be a non-negative integer (wei)", value)

    signature: Optional[str] = params.get("function_signature")
    data: Optional[str] = params.get("data")
    if signature and data:
        raise InvalidParameterError("data", "Pass either 'data' or 'function_signature', not both")
    if signature:
        try:
            data = encode_function_call(signature, params.get("args") or ())
        except Exception as exc:  # eth_abi raises several encoding error types
            raise InvalidParameterError("args", f"Cannot encode {signature}: {exc}") from exc
    data = data or "0x"
    try:
        hex_to_bytes(data)
    except ValueError:
        raise InvalidParameterError("data", f"'data' is not hex: {data!r}", data) from None

    return ContractCall(target_address=target, value=value, call_data=data, kind=CallKind.RAW_CALL)


_BUILDERS = {
    CallKind.NATIVE_TRANSFER: _build_native_transfer,
    CallKind.ERC20_TRANSFER: _build_erc20_transfer,
    CallKind.ERC721_TRANSFER: _build_erc721_transfer,
    CallKind.RAW_CALL: _build_raw_call,
}


def build_call(kind: CallKind | str, **params: Any) -> ContractCall:
    """
    Build a single contract call from a typed intent.

    Params by kind:
        NATIVE_TRANSFER: to, amount, decimals=18
        ERC20_TRANSFER: token_address, to, amount, decimals=18
        ERC721_TRANSFER: contract_address, from_address, to, token_id
        RAW_CALL: target_address, value=0, data | function_signature + args

    Raises:
        InvalidParameterError: naming the offending field
    """
    try:
        call_kind = CallKind(kind)
    except ValueError:
        raise InvalidParameterError("kind", f"Unknown call kind: {kind!r}", kind) from None
    return _BUILDERS[call_kind](params)


def build_batch(calls: Iterable[ContractCall]) -> OperationDraft:
    """Batch calls into a draft, keeping the caller's order."""
    calls = list(calls)
    for index, call in enumerate(calls):
        if not isinstance(call, ContractCall):
            raise InvalidParameterError(f"calls[{index}]", "Batch entries must be ContractCall instances", call)
    return OperationDraft(calls)


def encode_execute_call_data(
    draft: OperationDraft | Sequence[ContractCall],
    *,
    execute_signature: str = "execute(address,uint256,bytes)",
    batch_signature: str = "executeBatch(address[],bytes[])",
) -> str:
    """Encode the account call for a draft: execute for one call, executeBatch otherwise."""
    calls = list(draft)
    if not calls:
        raise InvalidParameterError("calls", "Operation must contain at least one call")

    if len(calls) == 1:
        call = calls[0]
        return build_execute_call_data(
            call.target_address, call.value, call.call_data, signature=execute_signature
        )

    if not batch_signature_carries_values(batch_signature):
        for index, call in enumerate(calls):
            if call.value:
                raise InvalidParameterError(
                    f"calls[{index}].value",
                    f"{batch_signature} cannot forward native value; send it as a separate operation",
                    call.value,
                )

    return build_execute_batch_call_data(
        [call.target_address for call in calls],
        [call.value for call in calls],
        [call.call_data for call in calls],
        signature=batch_signature,
    )
