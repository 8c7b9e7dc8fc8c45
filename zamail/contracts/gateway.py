# zamail/contracts/gateway.py
"""
ZaMail Contracts: Gateway Interface

Read/write boundary of the deployed MessageBoard contract.

    is_deployed()               -> contract address, or None
    sent_message_ids(addr)      -> [id, ...]
    received_message_ids(addr)  -> [id, ...]
    get_message(id)             -> Message
    send_message(to, input)     -> TransactionReceipt (TransactionRevertedError on failure)

Implementations:
    Web3ContractGateway  - web3.py AsyncWeb3 contract calls
    MockContractGateway  - in-process MockMessageBoard (offline devnet)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional, List, Callable, TYPE_CHECKING

from ..fhevm.instance import EncryptedInput

if TYPE_CHECKING:
    from ..session import WalletSession


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class Message:
    """
    On-chain message record.

    `clear_text` is filled in after decryption via `with_clear_text`.
    """
    id: int
    sender: str
    recipient: str
    handle: str                      # bytes32 hex ciphertext handle
    timestamp: Optional[int] = None
    clear_text: Optional[str] = None

    def with_clear_text(self, clear_text: str) -> "Message":
        return replace(self, clear_text=clear_text)


@dataclass(frozen=True)
class TransactionReceipt:
    """Outcome of a mined transaction."""
    tx_hash: str
    status: int
    block_number: Optional[int] = None
    message_id: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


# =============================================================================
# Interface
# =============================================================================

class ContractGateway(ABC):
    """MessageBoard access for one chain and one sending account."""

    @property
    @abstractmethod
    def contract_address(self) -> Optional[str]:
        """Configured contract address (None if the chain has none)."""
        pass

    @abstractmethod
    async def is_deployed(self) -> Optional[str]:
        """Address of the deployed contract, or None if there is no code."""
        pass

    @abstractmethod
    async def sent_message_ids(self, address: str) -> List[int]:
        pass

    @abstractmethod
    async def received_message_ids(self, address: str) -> List[int]:
        pass

    @abstractmethod
    async def get_message(self, message_id: int) -> Message:
        pass

    @abstractmethod
    async def send_message(self, recipient: str, encrypted: EncryptedInput) -> TransactionReceipt:
        """
        Submit an encrypted message.

        Raises:
            TransactionRevertedError: If the transaction fails on-chain
        """
        pass


GatewayFactory = Callable[["WalletSession"], ContractGateway]
