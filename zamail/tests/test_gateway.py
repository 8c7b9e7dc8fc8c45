# zamail/tests/test_gateway.py
"""
ZaMail Tests: MessageBoard Gateways, Deployments and Codec

Run:
    python -m zamail.tests.test_gateway
"""

from __future__ import annotations

import asyncio
import sys
from types import SimpleNamespace

import pytest

from ..adapters import Eip1193Web3Provider, ProviderErrorCode
from ..codec import encode_text, decode_text
from ..contracts import (
    MESSAGE_BOARD_ABI,
    MockContractGateway,
    Web3ContractGateway,
    resolve_contract_address,
)
from ..devnet import LocalDevnet
from ..errors import (
    ContractNotDeployedError,
    MessageValidationError,
    TransactionRevertedError,
)
from ..fhevm import SEPOLIA_CHAIN_ID
from .helpers import run_test_functions


# =============================================================================
# Codec
# =============================================================================

def test_encode_text_packs_big_endian():
    assert encode_text("hi") == 0x6869000000000000
    assert encode_text("abcdefgh") == int.from_bytes(b"abcdefgh", "big")
    assert decode_text(encode_text("hi")) == "hi"
    assert decode_text(encode_text("héllo")) == "héllo"


def test_encode_text_rejects_bad_input():
    with pytest.raises(MessageValidationError):
        encode_text("")
    with pytest.raises(MessageValidationError):
        encode_text("123456789")
    # 5 characters but 10 UTF-8 bytes
    with pytest.raises(MessageValidationError):
        encode_text("ééééé")
    with pytest.raises(ValueError):
        encode_text("toolongtext")
    with pytest.raises(ValueError):
        decode_text(2 ** 64)


# =============================================================================
# Deployments / ABI
# =============================================================================

def test_resolve_contract_address():
    assert resolve_contract_address(31337) == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    assert resolve_contract_address(SEPOLIA_CHAIN_ID) is None
    assert resolve_contract_address(5) is None
    assert resolve_contract_address(None) is None

    override = "0x" + "ab" * 20
    resolved = resolve_contract_address(SEPOLIA_CHAIN_ID, {SEPOLIA_CHAIN_ID: override})
    assert resolved is not None and resolved.lower() == override


def test_abi_functions():
    names = {entry["name"] for entry in MESSAGE_BOARD_ABI if entry["type"] == "function"}
    assert names == {"sendMessage", "getSentMessages", "getReceivedMessages", "getMessage"}


# =============================================================================
# Mock MessageBoard
# =============================================================================

def test_mock_board_send_and_read():
    devnet = LocalDevnet()
    alice, bob = devnet.address(0), devnet.address(1)
    board = devnet.board
    gateway = MockContractGateway(board, sender=alice)

    async def scenario():
        assert await gateway.is_deployed() == board.address
        encrypted = devnet.coprocessor.encrypt(encode_text("hi"), board.address, alice)
        receipt = await gateway.send_message(bob, encrypted)
        assert receipt.succeeded and receipt.message_id == 1

        assert await gateway.sent_message_ids(alice) == [1]
        assert await gateway.received_message_ids(bob) == [1]
        assert await gateway.received_message_ids(alice) == []

        message = await gateway.get_message(1)
        assert message.sender == alice and message.recipient == bob
        assert message.handle == encrypted.handle
        assert message.clear_text is None
        assert message.with_clear_text("hi").clear_text == "hi"

    asyncio.run(scenario())

    for account in (board.address, alice, bob):
        assert devnet.coprocessor.is_allowed(board.get_message(1).handle, account)
    assert not devnet.coprocessor.is_allowed(board.get_message(1).handle, devnet.address(2))


def test_mock_board_rejects_foreign_input_proof():
    devnet = LocalDevnet()
    alice, bob = devnet.address(0), devnet.address(1)
    gateway = MockContractGateway(devnet.board, sender=alice)
    # Encrypted for bob, submitted by alice
    encrypted = devnet.coprocessor.encrypt(7, devnet.board.address, bob)

    async def scenario():
        with pytest.raises(TransactionRevertedError):
            await gateway.send_message(bob, encrypted)

    asyncio.run(scenario())
    assert devnet.board.message_count == 0


def test_mock_board_revert_next():
    devnet = LocalDevnet()
    alice = devnet.address(0)
    gateway = MockContractGateway(devnet.board, sender=alice)
    devnet.board.revert_next = True

    async def scenario():
        encrypted = devnet.coprocessor.encrypt(7, devnet.board.address, alice)
        with pytest.raises(TransactionRevertedError):
            await gateway.send_message(alice, encrypted)
        receipt = await gateway.send_message(alice, encrypted)
        assert receipt.message_id == 1

    asyncio.run(scenario())


def test_undeployed_gateway():
    gateway = MockContractGateway(None, sender="0x" + "11" * 20, chain_id=5)

    async def scenario():
        assert gateway.contract_address is None
        assert await gateway.is_deployed() is None
        with pytest.raises(ContractNotDeployedError):
            await gateway.sent_message_ids("0x" + "11" * 20)

    asyncio.run(scenario())


# =============================================================================
# web3.py Gateway / Bridge
# =============================================================================

class FakeEth:
    def __init__(self, code: bytes):
        self.code = code
        self.lookups = []

    async def get_code(self, address):
        self.lookups.append(address)
        return self.code


def test_web3_gateway_is_deployed_checks_code():
    address = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    sender = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

    empty = SimpleNamespace(eth=FakeEth(b""))
    deployed = SimpleNamespace(eth=FakeEth(bytes.fromhex("6080604052")))

    async def scenario():
        gateway = Web3ContractGateway(empty, empty, address, sender, chain_id=31337)
        assert await gateway.is_deployed() is None

        gateway = Web3ContractGateway(deployed, deployed, address, sender, chain_id=31337)
        assert await gateway.is_deployed() == address

        gateway = Web3ContractGateway(deployed, deployed, None, sender, chain_id=SEPOLIA_CHAIN_ID)
        assert await gateway.is_deployed() is None
        with pytest.raises(ContractNotDeployedError):
            await gateway.sent_message_ids(sender)

    asyncio.run(scenario())
    assert deployed.eth.lookups == [address]


def test_web3_bridge_forwards_to_wallet():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    bridge = Eip1193Web3Provider(provider)

    async def scenario():
        response = await bridge.make_request("eth_chainId", [])
        assert response["result"] == hex(31337)

        response = await bridge.make_request("eth_blockNumber", [])
        assert response["error"]["code"] == ProviderErrorCode.UNSUPPORTED_METHOD

        assert await bridge.is_connected()

    asyncio.run(scenario())
    assert provider.count("eth_chainId") == 2


# =============================================================================
# Main Test Runner
# =============================================================================

def run_tests() -> bool:
    return run_test_functions("ZAMAIL: GATEWAY TESTS", [
        test_encode_text_packs_big_endian,
        test_encode_text_rejects_bad_input,
        test_resolve_contract_address,
        test_abi_functions,
        test_mock_board_send_and_read,
        test_mock_board_rejects_foreign_input_proof,
        test_mock_board_revert_next,
        test_undeployed_gateway,
        test_web3_gateway_is_deployed_checks_code,
        test_web3_bridge_forwards_to_wallet,
    ])


if __name__ == "__main__":
    sys.exit(0 if run_tests() else 1)
