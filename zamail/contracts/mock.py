# zamail/contracts/mock.py
"""
ZaMail Contracts: Mock MessageBoard

In-process MessageBoard for the local devnet. It behaves like the
deployed contract: checks input proofs, grants the contract, sender and
recipient access to each stored handle, and indexes message ids per
sender and recipient.

Usage:
    board = MockMessageBoard(coprocessor)
    gateway = MockContractGateway(board, sender=alice.address)
    receipt = await gateway.send_message(bob.address, encrypted)
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Optional, Dict, List, Callable

from web3 import Web3

from ..errors import ContractNotDeployedError, TransactionRevertedError
from ..fhevm.instance import EncryptedInput
from ..fhevm.mock import MockCoprocessor, InputProofError
from .deployments import MESSAGE_BOARD_ADDRESSES
from .gateway import ContractGateway, GatewayFactory, Message, TransactionReceipt


logger = logging.getLogger("zamail.contracts")


# =============================================================================
# Mock Contract
# =============================================================================

class MockMessageBoard:
    """Contract state of a MessageBoard on a local chain."""

    def __init__(
        self,
        coprocessor: MockCoprocessor,
        address: Optional[str] = None,
        deployed: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.coprocessor = coprocessor
        self.address = Web3.to_checksum_address(
            address or MESSAGE_BOARD_ADDRESSES[coprocessor.chain_id]
        )
        self.deployed = deployed
        self.revert_next = False
        self._clock = clock
        self._ids = itertools.count(1)
        self._blocks = itertools.count(1)
        self._messages: Dict[int, Message] = {}
        self._sent: Dict[str, List[int]] = {}
        self._received: Dict[str, List[int]] = {}

    @property
    def chain_id(self) -> int:
        return self.coprocessor.chain_id

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def send_message(
        self,
        sender: str,
        recipient: str,
        encrypted_content: str,
        input_proof: str,
    ) -> TransactionReceipt:
        """Execute sendMessage(recipient, encryptedContent, inputProof)."""
        if not self.deployed:
            raise ContractNotDeployedError(self.chain_id)
        if self.revert_next:
            self.revert_next = False
            raise TransactionRevertedError("sendMessage reverted")
        try:
            self.coprocessor.verify_input(encrypted_content, input_proof, self.address, sender)
        except InputProofError as e:
            raise TransactionRevertedError(f"sendMessage reverted: {e}") from e

        self.coprocessor.allow(encrypted_content, self.address)
        self.coprocessor.allow(encrypted_content, sender)
        self.coprocessor.allow(encrypted_content, recipient)

        message_id = next(self._ids)
        message = Message(
            id=message_id,
            sender=Web3.to_checksum_address(sender),
            recipient=Web3.to_checksum_address(recipient),
            handle=encrypted_content,
            timestamp=int(self._clock()),
        )
        self._messages[message_id] = message
        self._sent.setdefault(sender.lower(), []).append(message_id)
        self._received.setdefault(recipient.lower(), []).append(message_id)

        tx_hash = Web3.keccak(text=f"{self.address}:{message_id}:{sender}")
        logger.debug("Mock MessageBoard stored message %s", message_id)
        return TransactionReceipt(
            tx_hash="0x" + bytes(tx_hash).hex(),
            status=1,
            block_number=next(self._blocks),
            message_id=message_id,
        )

    def get_sent_messages(self, user: str) -> List[int]:
        return list(self._sent.get(user.lower(), []))

    def get_received_messages(self, user: str) -> List[int]:
        return list(self._received.get(user.lower(), []))

    def get_message(self, message_id: int) -> Message:
        try:
            return self._messages[int(message_id)]
        except KeyError:
            raise ValueError(f"Unknown message id {message_id}") from None


# =============================================================================
# Mock Gateway
# =============================================================================

@dataclass
class GatewayCalls:
    """Per-method call counters."""
    is_deployed: int = 0
    sent_message_ids: int = 0
    received_message_ids: int = 0
    get_message: int = 0
    send_message: int = 0


class MockContractGateway(ContractGateway):
    """ContractGateway over a MockMessageBoard; `board=None` is an undeployed chain."""

    def __init__(
        self,
        board: Optional[MockMessageBoard],
        sender: str,
        chain_id: Optional[int] = None,
        latency: float = 0.0,
    ):
        self._board = board
        self._sender = sender
        self._chain_id = chain_id if chain_id is not None else (board.chain_id if board else None)
        self.latency = latency
        self.calls = GatewayCalls()

    @property
    def contract_address(self) -> Optional[str]:
        return self._board.address if self._board is not None else None

    def _require_board(self) -> MockMessageBoard:
        if self._board is None or not self._board.deployed:
            raise ContractNotDeployedError(self._chain_id)
        return self._board

    async def is_deployed(self) -> Optional[str]:
        self.calls.is_deployed += 1
        await asyncio.sleep(self.latency)
        if self._board is None or not self._board.deployed:
            return None
        return self._board.address

    async def sent_message_ids(self, address: str) -> List[int]:
        self.calls.sent_message_ids += 1
        await asyncio.sleep(self.latency)
        return self._require_board().get_sent_messages(address)

    async def received_message_ids(self, address: str) -> List[int]:
        self.calls.received_message_ids += 1
        await asyncio.sleep(self.latency)
        return self._require_board().get_received_messages(address)

    async def get_message(self, message_id: int) -> Message:
        self.calls.get_message += 1
        await asyncio.sleep(self.latency)
        return self._require_board().get_message(message_id)

    async def send_message(self, recipient: str, encrypted: EncryptedInput) -> TransactionReceipt:
        self.calls.send_message += 1
        await asyncio.sleep(self.latency)
        return self._require_board().send_message(
            self._sender, recipient, encrypted.handle, encrypted.input_proof
        )


def mock_gateway_factory(
    boards: Dict[int, MockMessageBoard],
    latency: float = 0.0,
) -> GatewayFactory:
    """Gateway factory serving in-process boards keyed by chain id."""
    def create(session) -> ContractGateway:
        return MockContractGateway(
            boards.get(session.chain_id),
            sender=session.address,
            chain_id=session.chain_id,
            latency=latency,
        )

    return create
