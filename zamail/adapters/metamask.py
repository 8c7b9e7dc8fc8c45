# zamail/adapters/metamask.py
"""
ZaMail Adapters: MetaMask (EIP-1193) Integration

Provides:
    Eip1193Signer         - Signer that routes EIP-712 prompts through the wallet
    MockEthereumProvider  - In-process stand-in for window.ethereum, backed by
                            real eth_account keys so signatures recover correctly

Standard Ethereum Methods:
    eth_requestAccounts        - Prompt for account authorization
    eth_accounts               - Authorized accounts (no prompt)
    eth_chainId                - Current chain id (hex)
    eth_signTypedData_v4       - EIP-712 signature prompt
    personal_sign              - Message signature prompt
    wallet_switchEthereumChain - Ask the wallet to change network
    web3_clientVersion         - Node identification (Hardhat detection)

Usage:
    provider = MockEthereumProvider(accounts=[Account.from_key(key)], chain_id=31337)
    accounts = await provider.request(ETH_REQUEST_ACCOUNTS)
    signer = Eip1193Signer(provider, accounts[0])
    signature = await signer.sign_typed_data(typed_data)

    # Simulate the user switching network in the wallet UI
    await provider.switch_chain(11155111)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, Any, List, Callable

from eth_account.messages import encode_defunct, encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..errors import SignatureRejectedError
from .base import (
    EthereumProvider,
    Signer,
    WalletEvent,
    ProviderRpcError,
    ProviderErrorCode,
    is_user_rejection,
)


logger = logging.getLogger("zamail.adapters")


# =============================================================================
# Constants
# =============================================================================

ETH_REQUEST_ACCOUNTS = "eth_requestAccounts"
ETH_ACCOUNTS = "eth_accounts"
ETH_CHAIN_ID = "eth_chainId"
ETH_SIGN = "personal_sign"
ETH_SIGN_TYPED_DATA = "eth_signTypedData_v4"
WALLET_SWITCH_CHAIN = "wallet_switchEthereumChain"
WEB3_CLIENT_VERSION = "web3_clientVersion"

HARDHAT_CLIENT_VERSION = "HardhatNetwork/2.22.0/@fhevm/mock-utils"


# =============================================================================
# Signer
# =============================================================================

class Eip1193Signer(Signer):
    """Signer backed by a wallet provider; every signature is a user prompt."""

    def __init__(self, provider: EthereumProvider, address: str):
        self._provider = provider
        self._address = Web3.to_checksum_address(address)

    @property
    def address(self) -> str:
        return self._address

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        try:
            signature_hex = await self._provider.request(
                ETH_SIGN_TYPED_DATA,
                [self._address, json.dumps(typed_data)],
            )
        except Exception as e:
            if is_user_rejection(e):
                raise SignatureRejectedError("User rejected signature") from e
            raise
        return bytes.fromhex(signature_hex[2:])

    def __repr__(self) -> str:
        return f"Eip1193Signer({self._address})"


# =============================================================================
# Mock Provider
# =============================================================================

class MockEthereumProvider(EthereumProvider):
    """
    Mock Ethereum provider for testing.

    Simulates MetaMask JSON-RPC responses. Every request is recorded in
    `requests` so tests can count wallet prompts.
    """

    def __init__(
        self,
        accounts: List[LocalAccount],
        chain_id: int = 31337,
        authorized: bool = False,
        approve_connect: bool = True,
        auto_approve: bool = True,
        client_version: str = HARDHAT_CLIENT_VERSION,
        latency: float = 0.0,
    ):
        self._accounts: List[LocalAccount] = list(accounts)
        self._chain_id = chain_id
        self._authorized = authorized
        self.approve_connect = approve_connect
        self.auto_approve = auto_approve
        self.client_version = client_version
        self.latency = latency
        self.requests: List[str] = []
        self._event_handlers: Dict[str, List[Callable]] = {}

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def addresses(self) -> List[str]:
        return [a.address for a in self._accounts]

    def count(self, method: str) -> int:
        """Number of times a JSON-RPC method was requested."""
        return sum(1 for m in self.requests if m == method)

    # =========================================================================
    # JSON-RPC
    # =========================================================================

    async def request(self, method: str, params: Any = None) -> Any:
        """Handle JSON-RPC request."""
        self.requests.append(method)
        await asyncio.sleep(self.latency)

        if method == ETH_REQUEST_ACCOUNTS:
            if not self.approve_connect:
                raise ProviderRpcError(
                    ProviderErrorCode.USER_REJECTED, "User rejected the request."
                )
            self._authorized = True
            return self.addresses

        elif method == ETH_ACCOUNTS:
            return self.addresses if self._authorized else []

        elif method == ETH_CHAIN_ID:
            return hex(self._chain_id)

        elif method == ETH_SIGN_TYPED_DATA:
            # params: [address, typed_data_json]
            account = self._require_account(params[0])
            if not self.auto_approve:
                raise ProviderRpcError(
                    ProviderErrorCode.USER_REJECTED, "User rejected the request."
                )
            typed_data = params[1]
            if isinstance(typed_data, str):
                typed_data = json.loads(typed_data)
            signed = account.sign_message(encode_typed_data(full_message=typed_data))
            return "0x" + bytes(signed.signature).hex()

        elif method == ETH_SIGN:
            # params: [message_hex, address]
            account = self._require_account(params[1])
            if not self.auto_approve:
                raise ProviderRpcError(
                    ProviderErrorCode.USER_REJECTED, "User rejected the request."
                )
            signed = account.sign_message(encode_defunct(hexstr=params[0]))
            return "0x" + bytes(signed.signature).hex()

        elif method == WALLET_SWITCH_CHAIN:
            await self.switch_chain(int(params[0]["chainId"], 16))
            return None

        elif method == WEB3_CLIENT_VERSION:
            return self.client_version

        raise ProviderRpcError(
            ProviderErrorCode.UNSUPPORTED_METHOD, f"Unsupported method: {method}"
        )

    def _require_account(self, address: str) -> LocalAccount:
        if not self._authorized:
            raise ProviderRpcError(ProviderErrorCode.UNAUTHORIZED, "Unauthorized")
        for account in self._accounts:
            if account.address.lower() == str(address).lower():
                return account
        raise ProviderRpcError(
            ProviderErrorCode.UNAUTHORIZED, f"Unknown account: {address}"
        )

    # =========================================================================
    # Wallet UI Simulation
    # =========================================================================

    async def switch_chain(self, chain_id: int) -> None:
        """Simulate the user selecting another network."""
        if chain_id == self._chain_id:
            return
        self._chain_id = chain_id
        await self._emit(WalletEvent.CHAIN_CHANGED.value, hex(chain_id))

    async def switch_account(self, address: str) -> None:
        """Simulate the user selecting another account (moves it first)."""
        account = next(
            (a for a in self._accounts if a.address.lower() == address.lower()),
            None,
        )
        if account is None:
            raise ValueError(f"Unknown account: {address}")
        self._accounts.remove(account)
        self._accounts.insert(0, account)
        if self._authorized:
            await self._emit(WalletEvent.ACCOUNTS_CHANGED.value, self.addresses)

    async def lock(self) -> None:
        """Simulate the user locking the wallet."""
        self._authorized = False
        await self._emit(WalletEvent.ACCOUNTS_CHANGED.value, [])

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event: str, callback: Callable) -> None:
        """Subscribe to events."""
        self._event_handlers.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        """Unsubscribe from events."""
        handlers = self._event_handlers.get(event, [])
        if callback in handlers:
            handlers.remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._event_handlers.get(event, []))

    async def _emit(self, event: str, data: Any) -> None:
        """Emit event to handlers."""
        for handler in list(self._event_handlers.get(event, [])):
            try:
                result = handler(data)
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.exception("Provider listener for %s failed", event)
