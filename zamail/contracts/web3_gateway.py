# zamail/contracts/web3_gateway.py
"""
ZaMail Contracts: web3.py Gateway

MessageBoard access over web3.py. Reads go through the session's
read-only provider; transactions are sent from the session account
through the wallet, so each send is a wallet prompt.

Requirements:
    pip install web3

Usage:
    factory = web3_gateway_factory(provider)
    gateway = factory(session)
    if await gateway.is_deployed():
        ids = await gateway.received_message_ids(session.address)
"""

from __future__ import annotations

import logging
from typing import Optional, Dict, List

from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted
from web3.logs import DISCARD

from ..adapters import EthereumProvider, Eip1193Web3Provider
from ..errors import ContractNotDeployedError, TransactionRevertedError
from ..fhevm.instance import EncryptedInput
from .abi import MESSAGE_BOARD_ABI
from .deployments import resolve_contract_address
from .gateway import ContractGateway, GatewayFactory, Message, TransactionReceipt


logger = logging.getLogger("zamail.contracts")

DEFAULT_RECEIPT_TIMEOUT = 120.0


def _hex_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class Web3ContractGateway(ContractGateway):
    """MessageBoard contract over AsyncWeb3."""

    def __init__(
        self,
        reader: AsyncWeb3,
        writer: AsyncWeb3,
        contract_address: Optional[str],
        sender: str,
        chain_id: Optional[int] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        """
        Args:
            reader: Web3 used for calls and code lookup
            writer: Web3 used for transactions (wallet-backed)
            contract_address: MessageBoard address (None if undeployed)
            sender: Account transactions are sent from
            chain_id: Chain the gateway serves (for error messages)
            receipt_timeout: Seconds to wait for a receipt
        """
        self._reader = reader
        self._writer = writer
        self._address = Web3.to_checksum_address(contract_address) if contract_address else None
        self._sender = Web3.to_checksum_address(sender)
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout

    @property
    def contract_address(self) -> Optional[str]:
        return self._address

    def _contract(self, w3: AsyncWeb3):
        if self._address is None:
            raise ContractNotDeployedError(self._chain_id)
        return w3.eth.contract(address=self._address, abi=MESSAGE_BOARD_ABI)

    # =========================================================================
    # Reads
    # =========================================================================

    async def is_deployed(self) -> Optional[str]:
        if self._address is None:
            return None
        code = await self._reader.eth.get_code(self._address)
        if not code:
            logger.info("No MessageBoard code at %s on chain %s", self._address, self._chain_id)
            return None
        return self._address

    async def sent_message_ids(self, address: str) -> List[int]:
        contract = self._contract(self._reader)
        ids = await contract.functions.getSentMessages(Web3.to_checksum_address(address)).call()
        return [int(i) for i in ids]

    async def received_message_ids(self, address: str) -> List[int]:
        contract = self._contract(self._reader)
        ids = await contract.functions.getReceivedMessages(Web3.to_checksum_address(address)).call()
        return [int(i) for i in ids]

    async def get_message(self, message_id: int) -> Message:
        contract = self._contract(self._reader)
        sender, recipient, content, timestamp = await contract.functions.getMessage(
            int(message_id)
        ).call()
        return Message(
            id=int(message_id),
            sender=sender,
            recipient=recipient,
            handle="0x" + bytes(content).hex(),
            timestamp=int(timestamp),
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def send_message(self, recipient: str, encrypted: EncryptedInput) -> TransactionReceipt:
        contract = self._contract(self._writer)
        try:
            tx_hash = await contract.functions.sendMessage(
                Web3.to_checksum_address(recipient),
                _hex_bytes(encrypted.handle),
                _hex_bytes(encrypted.input_proof),
            ).transact({"from": self._sender})
            logger.info("sendMessage submitted: %s", tx_hash.hex())
            receipt = await self._writer.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except ContractLogicError as e:
            raise TransactionRevertedError(f"sendMessage reverted: {e}") from e
        except TimeExhausted as e:
            raise TransactionRevertedError(f"sendMessage not mined: {e}") from e

        tx_hex = "0x" + bytes(receipt["transactionHash"]).hex()
        if receipt["status"] != 1:
            raise TransactionRevertedError("sendMessage reverted", tx_hash=tx_hex)

        message_id = None
        events = contract.events.MessageSent().process_receipt(receipt, errors=DISCARD)
        if events:
            message_id = int(events[0]["args"]["messageId"])

        return TransactionReceipt(
            tx_hash=tx_hex,
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            message_id=message_id,
        )


def web3_gateway_factory(
    provider: EthereumProvider,
    overrides: Optional[Dict[int, str]] = None,
) -> GatewayFactory:
    """
    Gateway factory for live chains.

    Args:
        provider: Wallet provider transactions are sent through
        overrides: Chain id -> contract address overrides
    """
    def create(session) -> ContractGateway:
        writer = AsyncWeb3(Eip1193Web3Provider(provider))
        return Web3ContractGateway(
            reader=session.readonly_provider,
            writer=writer,
            contract_address=resolve_contract_address(session.chain_id, overrides),
            sender=session.address,
            chain_id=session.chain_id,
        )

    return create
