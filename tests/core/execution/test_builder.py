"""
Tests for the Operation Builder.

Typed intents to contract calls, batching and execute calldata.
"""

import pytest
from eth_utils import to_checksum_address

from smartwallet.core.execution import (
    CallKind,
    ContractCall,
    OperationDraft,
    build_batch,
    build_call,
    encode_execute_call_data,
    format_units,
    parse_units,
)
from smartwallet.core.execution.encoding import selector_from_signature
from smartwallet.core.recovery import InvalidParameterError


RECIPIENT = "0x1111111111111111111111111111111111111111"
DAI = "0x" + "ab" * 20
NFT = "0x" + "cd" * 20
SENDER = "0x2222222222222222222222222222222222222222"
CHECKSUMMED = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
BAD_CHECKSUM = "0x5FF137D4B0FDCD49DcA30c7CF57E578a026d2789"


# =============================================================================
# Typed intents
# =============================================================================

class TestBuildCall:
    """Tests for single-call intents."""

    def test_native_transfer(self):
        call = build_call(CallKind.NATIVE_TRANSFER, to=RECIPIENT, amount="1.5")

        assert call.target_address == RECIPIENT
        assert call.value == 1_500_000_000_000_000_000
        assert call.call_data == "0x"
        assert call.kind == CallKind.NATIVE_TRANSFER

    def test_erc20_transfer(self):
        call = build_call(
            CallKind.ERC20_TRANSFER,
            token_address=DAI,
            to=RECIPIENT,
            amount="5",
            decimals=18,
        )

        assert call.target_address == to_checksum_address(DAI)
        assert call.value == 0
        assert call.call_data.startswith("0xa9059cbb")
        assert RECIPIENT[2:] in call.call_data
        assert call.call_data.endswith(hex(5 * 10**18)[2:])

    def test_erc20_transfer_with_six_decimals(self):
        call = build_call("erc20_transfer", token_address=DAI, to=RECIPIENT, amount="2.5", decimals=6)

        assert call.call_data.endswith(hex(2_500_000)[2:])

    def test_erc721_transfer(self):
        call = build_call(
            CallKind.ERC721_TRANSFER,
            contract_address=NFT,
            from_address=SENDER,
            to=RECIPIENT,
            token_id=42,
        )

        assert call.target_address == to_checksum_address(NFT)
        assert call.call_data.startswith("0x23b872dd")
        assert call.call_data.endswith(hex(42)[2:].rjust(64, "0"))

    def test_raw_call_with_data(self):
        call = build_call(CallKind.RAW_CALL, target_address=RECIPIENT, data="0xdeadbeef", value=3)

        assert call.call_data == "0xdeadbeef"
        assert call.value == 3

    def test_raw_call_from_function_signature(self):
        call = build_call(
            CallKind.RAW_CALL,
            target_address=DAI,
            function_signature="approve(address,uint256)",
            args=[RECIPIENT, 1],
        )

        assert call.call_data.startswith("0x095ea7b3")

    def test_checksummed_address_accepted(self):
        call = build_call(CallKind.NATIVE_TRANSFER, to=CHECKSUMMED, amount="1")
        assert call.target_address == CHECKSUMMED


class TestBuildCallValidation:
    """Tests for rejected intents; every error names its field."""

    @pytest.mark.parametrize(
        "to",
        ["0x123", "not-an-address", None, BAD_CHECKSUM, "0x" + "00" * 20],
    )
    def test_invalid_recipient(self, to):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(CallKind.NATIVE_TRANSFER, to=to, amount="1")
        assert exc_info.value.field == "to"

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", None, "NaN"])
    def test_invalid_amount(self, amount):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(CallKind.ERC20_TRANSFER, token_address=DAI, to=RECIPIENT, amount=amount)
        assert exc_info.value.field == "amount"

    def test_amount_with_too_many_decimals(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(CallKind.ERC20_TRANSFER, token_address=DAI, to=RECIPIENT, amount="0.0000001", decimals=6)
        assert exc_info.value.field == "amount"

    def test_invalid_token_address(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(CallKind.ERC20_TRANSFER, token_address="0xdead", to=RECIPIENT, amount="1")
        assert exc_info.value.field == "token_address"

    @pytest.mark.parametrize("token_id", [0, -1, "7", None])
    def test_invalid_token_id(self, token_id):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(
                CallKind.ERC721_TRANSFER,
                contract_address=NFT,
                from_address=SENDER,
                to=RECIPIENT,
                token_id=token_id,
            )
        assert exc_info.value.field == "token_id"

    def test_raw_call_rejects_non_hex_data(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(CallKind.RAW_CALL, target_address=RECIPIENT, data="0xzz")
        assert exc_info.value.field == "data"

    def test_raw_call_rejects_negative_value(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call(CallKind.RAW_CALL, target_address=RECIPIENT, value=-1)
        assert exc_info.value.field == "value"

    def test_unknown_kind(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            build_call("swap", to=RECIPIENT)
        assert exc_info.value.field == "kind"


# =============================================================================
# Batching
# =============================================================================

class TestBuildBatch:
    """Tests for drafts and execute calldata."""

    def test_batch_preserves_order(self):
        calls = [
            build_call(CallKind.ERC20_TRANSFER, token_address=DAI, to=RECIPIENT, amount=str(i + 1))
            for i in range(5)
        ]

        draft = build_batch(calls)

        assert isinstance(draft, OperationDraft)
        assert draft.calls == calls
        assert [draft[i] for i in range(len(draft))] == calls

    def test_batch_rejects_non_calls(self):
        call = build_call(CallKind.NATIVE_TRANSFER, to=RECIPIENT, amount="1")

        with pytest.raises(InvalidParameterError) as exc_info:
            build_batch([call, {"to": RECIPIENT}])
        assert exc_info.value.field == "calls[1]"

    def test_draft_is_mutable_until_submission(self):
        draft = OperationDraft()
        assert draft.is_empty

        draft.add(ContractCall(RECIPIENT, 1)).add(ContractCall(SENDER, 2))
        assert len(draft) == 2
        assert draft.total_value == 3

        draft.clear()
        assert draft.is_empty

    def test_empty_draft_cannot_be_encoded(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            encode_execute_call_data(OperationDraft())
        assert exc_info.value.field == "calls"

    def test_single_call_uses_execute(self):
        draft = build_batch([build_call(CallKind.NATIVE_TRANSFER, to=RECIPIENT, amount="1")])

        assert encode_execute_call_data(draft).startswith("0xb61d27f6")

    def test_multiple_calls_use_execute_batch(self):
        draft = build_batch([
            build_call(CallKind.ERC20_TRANSFER, token_address=DAI, to=RECIPIENT, amount="1"),
            build_call(CallKind.ERC721_TRANSFER, contract_address=NFT, from_address=SENDER, to=RECIPIENT, token_id=1),
        ])

        call_data = encode_execute_call_data(draft)

        assert call_data.startswith(selector_from_signature("executeBatch(address[],bytes[])"))

    def test_native_value_rejected_in_value_less_batch(self):
        draft = build_batch([
            build_call(CallKind.NATIVE_TRANSFER, to=RECIPIENT, amount="1"),
            build_call(CallKind.ERC20_TRANSFER, token_address=DAI, to=RECIPIENT, amount="1"),
        ])

        with pytest.raises(InvalidParameterError) as exc_info:
            encode_execute_call_data(draft)
        assert exc_info.value.field == "calls[0].value"

    def test_native_value_allowed_with_value_batch(self):
        signature = "executeBatch(address[],uint256[],bytes[])"
        draft = build_batch([
            build_call(CallKind.NATIVE_TRANSFER, to=RECIPIENT, amount="1"),
            build_call(CallKind.NATIVE_TRANSFER, to=SENDER, amount="2"),
        ])

        call_data = encode_execute_call_data(draft, batch_signature=signature)

        assert call_data.startswith(selector_from_signature(signature))


class TestUnits:
    """Tests for decimal unit conversion."""

    def test_parse_units(self):
        assert parse_units("1.5", 6) == 1_500_000
        assert parse_units(2, 0) == 2

    def test_format_units(self):
        assert format_units(1_500_000, 6) == "1.5"
        assert format_units(10**18, 18) == "1.0"
        assert format_units(200_000 * 10**9, 18) == "0.0002"
        assert format_units(0, 18) == "0.0"
