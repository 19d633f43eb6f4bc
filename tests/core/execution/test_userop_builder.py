"""
Tests for ERC-4337 UserOperation calldata builders and counterfactual accounts.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import decode
from eth_utils import to_checksum_address

from smartwallet.config import Settings
from smartwallet.core.execution.account import LocalAccountSigner, SmartAccount
from smartwallet.core.execution.encoding import (
    SENDER_ADDRESS_RESULT,
    build_execute_batch_call_data,
    build_execute_call_data,
    build_init_code,
    decode_sender_address_revert,
    encode_function_call,
    hex_to_bytes,
    selector_from_signature,
)
from smartwallet.core.recovery import InvalidParameterError

TARGET = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
FACTORY = "0x9406Cc6185a346906296840746125a0E44976454"


def test_build_execute_call_data_encodes_execute() -> None:
    selector = selector_from_signature("execute(address,uint256,bytes)")
    call_data = build_execute_call_data(
        to_address=TARGET,
        value_wei=1,
        data="0x1234",
        signature="execute(address,uint256,bytes)",
    )

    assert selector == "0xb61d27f6"
    assert call_data.startswith(selector)
    # 4-byte selector + 3 words (address, value, offset) + bytes length + data padded
    assert len(call_data) == len(selector) + 64 * 4 + 64
    assert call_data.endswith("1234" + "0" * 60)


def test_execute_batch_without_values() -> None:
    call_data = build_execute_batch_call_data(
        [TARGET, OTHER],
        [0, 0],
        ["0x01", "0x"],
        signature="executeBatch(address[],bytes[])",
    )

    assert call_data.startswith(selector_from_signature("executeBatch(address[],bytes[])"))
    targets, payloads = decode(["address[]", "bytes[]"], hex_to_bytes(call_data)[4:])
    assert [t.lower() for t in targets] == [TARGET, OTHER]
    assert list(payloads) == [b"\x01", b""]


def test_execute_batch_with_values() -> None:
    signature = "executeBatch(address[],uint256[],bytes[])"
    call_data = build_execute_batch_call_data([TARGET], [7], ["0x"], signature=signature)

    targets, values, payloads = decode(
        ["address[]", "uint256[]", "bytes[]"], hex_to_bytes(call_data)[4:]
    )
    assert values == (7,)
    assert call_data.startswith(selector_from_signature(signature))


def test_init_code_is_factory_followed_by_create_account() -> None:
    owner = "0x3333333333333333333333333333333333333333"
    init_code = build_init_code(FACTORY, owner, 0)

    assert init_code.startswith(FACTORY.lower())
    assert init_code[42:] == encode_function_call("createAccount(address,uint256)", [owner, 0])[2:]


def test_decode_sender_address_revert() -> None:
    account = "0x" + "ab" * 20
    revert = selector_from_signature(SENDER_ADDRESS_RESULT) + "0" * 24 + "ab" * 20

    assert decode_sender_address_revert(revert) == to_checksum_address(account)


def test_decode_sender_address_rejects_other_reverts() -> None:
    with pytest.raises(ValueError):
        decode_sender_address_revert("0x08c379a0")


@pytest.mark.asyncio
async def test_account_index_offsets_configured_salt() -> None:
    node = MagicMock()
    node.get_sender_address = AsyncMock(return_value="0x" + "a1" * 20)
    signer = LocalAccountSigner("0x" + "33" * 32)
    settings = Settings(account_factory_address=FACTORY, account_salt=5)

    account = await SmartAccount.create(signer, node, settings, index=2)

    assert account.index == 2
    assert account.init_code == build_init_code(FACTORY, signer.address, 7)
    assert node.get_sender_address.await_args.args[0] == account.init_code


@pytest.mark.asyncio
async def test_negative_account_index_rejected() -> None:
    node = MagicMock()
    node.get_sender_address = AsyncMock()

    with pytest.raises(InvalidParameterError):
        await SmartAccount.create(LocalAccountSigner("0x" + "33" * 32), node, Settings(), index=-1)
    node.get_sender_address.assert_not_called()
