# zamail/adapters/base.py
"""
ZaMail Adapters: Wallet Capability Interfaces

Explicit capability interfaces for the duck-typed objects a browser
wallet hands to a dapp:

    EthereumProvider  - EIP-1193 provider (request + event subscription)
    Signer            - signs EIP-712 typed data for one address

Supported Events:
    accountsChanged   - list of authorized accounts (empty = locked/disconnected)
    chainChanged      - hex chain id
    disconnect        - provider lost its connection

Usage:
    provider = MockEthereumProvider(accounts=[account], chain_id=31337)
    accounts = await provider.request(ETH_REQUEST_ACCOUNTS)
    provider.on(WalletEvent.CHAIN_CHANGED.value, on_chain_changed)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Dict, Any, List, Callable

from ..errors import ZaMailError


# =============================================================================
# Enums
# =============================================================================

class WalletEvent(Enum):
    """EIP-1193 provider events."""
    ACCOUNTS_CHANGED = "accountsChanged"
    CHAIN_CHANGED = "chainChanged"
    DISCONNECT = "disconnect"


class ProviderErrorCode(IntEnum):
    """EIP-1193 provider error codes."""
    USER_REJECTED = 4001
    UNAUTHORIZED = 4100
    UNSUPPORTED_METHOD = 4200
    DISCONNECTED = 4900
    CHAIN_DISCONNECTED = 4901
    UNRECOGNIZED_CHAIN = 4902


# =============================================================================
# Exceptions
# =============================================================================

class ProviderRpcError(ZaMailError):
    """Error returned by an EIP-1193 provider."""

    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(f"[{code}] {message}")

    @property
    def is_user_rejection(self) -> bool:
        return self.code == ProviderErrorCode.USER_REJECTED


def is_user_rejection(exc: BaseException) -> bool:
    """Check whether an exception represents a user rejection."""
    if isinstance(exc, ProviderRpcError):
        return exc.is_user_rejection
    return "rejected" in str(exc).lower()


# =============================================================================
# EIP-712
# =============================================================================

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


@dataclass(frozen=True)
class EIP712Domain:
    """EIP-712 domain separator."""
    name: str
    version: str
    chain_id: int
    verifying_contract: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to EIP-712 format."""
        domain: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
        }
        if self.verifying_contract:
            domain["verifyingContract"] = self.verifying_contract
        return domain

    def field_types(self) -> List[Dict[str, str]]:
        fields = EIP712_DOMAIN_FIELDS[:3]
        if self.verifying_contract:
            fields = EIP712_DOMAIN_FIELDS
        return list(fields)


def build_typed_data(
    domain: EIP712Domain,
    types: Dict[str, List[Dict[str, str]]],
    primary_type: str,
    message: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Assemble a full EIP-712 document (eth_signTypedData_v4 payload).

    Args:
        domain: EIP-712 domain
        types: Struct type definitions (without EIP712Domain)
        primary_type: Name of the signed struct
        message: Struct values
    """
    return {
        "types": {"EIP712Domain": domain.field_types(), **types},
        "primaryType": primary_type,
        "domain": domain.to_dict(),
        "message": message,
    }


# =============================================================================
# Capability Interfaces
# =============================================================================

class EthereumProvider(ABC):
    """
    Abstract Ethereum provider interface.

    Represents window.ethereum in a browser, or a mock for testing.
    """

    @abstractmethod
    async def request(self, method: str, params: Any = None) -> Any:
        """Send JSON-RPC request."""
        pass

    @abstractmethod
    def on(self, event: str, callback: Callable) -> None:
        """Subscribe to events."""
        pass

    @abstractmethod
    def remove_listener(self, event: str, callback: Callable) -> None:
        """Unsubscribe from events."""
        pass


class Signer(ABC):
    """Signing capability bound to a single account."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing account."""
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        """
        Sign a full EIP-712 document.

        Returns:
            65-byte signature r || s || v

        Raises:
            SignatureRejectedError: If the user rejects the prompt
        """
        pass
