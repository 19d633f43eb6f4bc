"""
Tests for the chain node provider.
"""

import json

import httpx
import pytest
from eth_abi import encode

from smartwallet.config import Settings
from smartwallet.core.execution.encoding import (
    SENDER_ADDRESS_RESULT,
    build_get_sender_address_call,
    selector_from_signature,
)
from smartwallet.providers.node import NodeError, NodeProvider


ACCOUNT = "0x" + "a1" * 20
INIT_CODE = "0x" + "9f" * 20 + "5fbfb9cf"


def make_provider(handlers, calls=None, **overrides) -> NodeProvider:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        payload = handlers[body["method"]]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **payload})

    settings = Settings(rpc_url="http://node.test", **overrides)
    return NodeProvider(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def revert_payload(data):
    return {"error": {"code": 3, "message": "execution reverted", "data": data}}


SENDER_REVERT = selector_from_signature(SENDER_ADDRESS_RESULT) + encode(["address"], [ACCOUNT]).hex()


class TestSenderAddress:

    @pytest.mark.asyncio
    async def test_reads_address_from_revert(self):
        calls = []
        provider = make_provider({"eth_call": revert_payload(SENDER_REVERT)}, calls)

        address = await provider.get_sender_address(INIT_CODE)

        assert address.lower() == ACCOUNT
        assert calls[0]["params"][0]["data"] == build_get_sender_address_call(INIT_CODE)

    @pytest.mark.asyncio
    async def test_nested_revert_data(self):
        provider = make_provider({"eth_call": revert_payload({"originalError": {"data": SENDER_REVERT}})})

        address = await provider.get_sender_address(INIT_CODE)

        assert address.lower() == ACCOUNT

    @pytest.mark.asyncio
    async def test_other_revert_is_raised(self):
        provider = make_provider({"eth_call": revert_payload("0x08c379a0")})

        with pytest.raises(NodeError):
            await provider.get_sender_address(INIT_CODE)

    @pytest.mark.asyncio
    async def test_missing_revert_is_an_error(self):
        provider = make_provider({"eth_call": {"result": "0x"}})

        with pytest.raises(NodeError):
            await provider.get_sender_address(INIT_CODE)


class TestReads:

    @pytest.mark.asyncio
    async def test_entry_point_nonce(self):
        calls = []
        provider = make_provider({"eth_call": {"result": "0x" + "0" * 63 + "7"}}, calls)

        assert await provider.get_entry_point_nonce(ACCOUNT) == 7
        assert calls[0]["params"][0]["to"] == Settings().entry_point_address

    @pytest.mark.asyncio
    async def test_allowance(self):
        calls = []
        provider = make_provider({"eth_call": {"result": "0x" + "f" * 64}}, calls)

        assert await provider.get_allowance("0x" + "da" * 20, ACCOUNT, "0x" + "50" * 20) == 2**256 - 1
        assert calls[0]["params"][0]["data"].startswith("0xdd62ed3e")

    @pytest.mark.asyncio
    async def test_chain_id(self):
        provider = make_provider({"eth_chainId": {"result": "0x2b1"}})

        assert await provider.get_chain_id() == 689


class TestFeeData:

    @pytest.mark.asyncio
    async def test_eip1559_fees(self):
        provider = make_provider({
            "eth_getBlockByNumber": {"result": {"baseFeePerGas": hex(100)}},
            "eth_maxPriorityFeePerGas": {"result": hex(1000)},
        })

        fees = await provider.get_fee_data()

        # tip 1000 + 13% buffer, max fee = 2 * base fee + tip
        assert fees.max_priority_fee_per_gas == 1130
        assert fees.max_fee_per_gas == 1330

    @pytest.mark.asyncio
    async def test_legacy_gas_price(self):
        provider = make_provider({
            "eth_getBlockByNumber": {"result": {"number": "0x1"}},
            "eth_gasPrice": {"result": hex(1000)},
        })

        fees = await provider.get_fee_data()

        assert fees.max_fee_per_gas == 1130
        assert fees.max_priority_fee_per_gas == 1130

    @pytest.mark.asyncio
    async def test_missing_priority_fee_method_falls_back(self):
        provider = make_provider({
            "eth_getBlockByNumber": {"result": {"baseFeePerGas": hex(100)}},
            "eth_maxPriorityFeePerGas": {"error": {"code": -32601, "message": "method not found"}},
            "eth_gasPrice": {"result": hex(2000)},
        })

        fees = await provider.get_fee_data()

        assert fees.max_fee_per_gas == 2260

    @pytest.mark.asyncio
    async def test_custom_buffer(self):
        provider = make_provider(
            {"eth_getBlockByNumber": {"result": None}, "eth_gasPrice": {"result": hex(1000)}},
            gas_price_buffer_percent=0,
        )

        fees = await provider.get_fee_data()

        assert fees.max_fee_per_gas == 1000
