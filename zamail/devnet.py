# zamail/devnet.py
"""
ZaMail: Offline Local Devnet

Everything a local Hardhat + FHEVM mock setup provides, in process:
deterministic Hardhat accounts, a MetaMask-like provider per user, one
MockCoprocessor and one MockMessageBoard on chain 31337.

Usage:
    devnet = LocalDevnet()
    alice = devnet.client(0)
    bob = devnet.client(1)
    await alice.connect()
    await alice.coordinator.send_message(devnet.address(1), "hi")
"""

from __future__ import annotations

import time
from typing import Optional, Dict, List, Callable

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .adapters import MockEthereumProvider
from .client import ZaMailClient, create_client
from .config import ZaMailConfig
from .contracts import MockMessageBoard, GatewayFactory, mock_gateway_factory
from .fhevm import DefaultInstanceFactory, MockCoprocessor, HARDHAT_CHAIN_ID
from .signatures import StringStorage


# Default Hardhat node accounts (mnemonic "test test ... junk")
HARDHAT_PRIVATE_KEYS: List[str] = [
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a",
]


class LocalDevnet:
    """In-process local chain with the MessageBoard deployed."""

    def __init__(
        self,
        chain_id: int = HARDHAT_CHAIN_ID,
        clock: Callable[[], float] = time.time,
        latency: float = 0.0,
        deployed: bool = True,
    ):
        self.chain_id = chain_id
        self.latency = latency
        self.accounts: List[LocalAccount] = [Account.from_key(k) for k in HARDHAT_PRIVATE_KEYS]
        self.coprocessor = MockCoprocessor(chain_id=chain_id, clock=clock)
        self.board = MockMessageBoard(self.coprocessor, deployed=deployed, clock=clock)

    def address(self, index: int) -> str:
        return self.accounts[index].address

    def provider(self, index: int = 0, **kwargs) -> MockEthereumProvider:
        """MetaMask-like provider whose selected account is `accounts[index]`."""
        ordered = [self.accounts[index]] + [
            a for i, a in enumerate(self.accounts) if i != index
        ]
        kwargs.setdefault("chain_id", self.chain_id)
        kwargs.setdefault("latency", self.latency)
        return MockEthereumProvider(ordered, **kwargs)

    def instance_factory(self) -> DefaultInstanceFactory:
        return DefaultInstanceFactory(coprocessor=self.coprocessor)

    def gateway_factory(self) -> GatewayFactory:
        boards: Dict[int, MockMessageBoard] = {self.chain_id: self.board}
        return mock_gateway_factory(boards, latency=self.latency)

    def client(
        self,
        index: int = 0,
        config: Optional[ZaMailConfig] = None,
        storage: Optional[StringStorage] = None,
        provider: Optional[MockEthereumProvider] = None,
    ) -> ZaMailClient:
        """Fully wired client for `accounts[index]`."""
        return create_client(
            provider or self.provider(index),
            self.instance_factory(),
            self.gateway_factory(),
            config=config,
            storage=storage,
        )
