# zamail/client.py
"""
ZaMail: Client Wiring

Builds the component graph for one wallet provider:

    WalletSessionProvider ─┬─> FheInstanceManager (attached)
                           └─> MessageBoardCoordinator <── DecryptionSignatureStore
                                                     <── gateway factory

Usage:
    client = create_client(provider, DefaultInstanceFactory(backend=...),
                           web3_gateway_factory(provider))
    await client.start()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Callable

from .adapters import EthereumProvider
from .config import ZaMailConfig
from .contracts import GatewayFactory
from .coordinator import MessageBoardCoordinator, CoordinatorState
from .fhevm import FheInstanceManager, FhevmInstanceFactory
from .session import WalletSessionProvider, WalletSession
from .signatures import DecryptionSignatureStore, StringStorage, InMemoryStorage, JsonFileStorage


@dataclass
class ZaMailClient:
    """Wired components of one client."""
    provider: EthereumProvider
    sessions: WalletSessionProvider
    fhevm: FheInstanceManager
    signatures: DecryptionSignatureStore
    coordinator: MessageBoardCoordinator
    detach_fhevm: Callable[[], None]

    async def start(self) -> Optional[WalletSession]:
        """Restore an authorized wallet silently, then settle."""
        session = await self.sessions.start()
        await self.coordinator.settle()
        return session

    async def connect(self) -> CoordinatorState:
        """Prompt for wallet authorization, then settle."""
        await self.sessions.connect()
        return await self.coordinator.settle()

    async def close(self) -> None:
        self.coordinator.close()
        self.detach_fhevm()
        await self.sessions.disconnect()


def create_client(
    provider: EthereumProvider,
    instance_factory: FhevmInstanceFactory,
    gateway_factory: GatewayFactory,
    config: Optional[ZaMailConfig] = None,
    storage: Optional[StringStorage] = None,
) -> ZaMailClient:
    """
    Wire a client around a wallet provider.

    Args:
        provider: EIP-1193 wallet provider
        instance_factory: Builds FHEVM instances
        gateway_factory: Builds MessageBoard gateways per session
        config: Client settings (defaults if None)
        storage: Signature storage (from config, else in-memory, if None)
    """
    config = config or ZaMailConfig()
    if storage is None:
        if config.signature_store_path is not None:
            storage = JsonFileStorage(config.signature_store_path)
        else:
            storage = InMemoryStorage()

    sessions = WalletSessionProvider(provider, mock_chains=config.mock_chains)
    fhevm = FheInstanceManager(
        instance_factory,
        mock_chains=config.mock_chains,
        enabled=config.fhevm_enabled,
    )
    detach = fhevm.attach(sessions)
    signatures = DecryptionSignatureStore(
        storage,
        duration_days=config.signature_duration_days,
    )
    coordinator = MessageBoardCoordinator(
        sessions,
        fhevm,
        signatures,
        gateway_factory,
        config=config,
    )
    return ZaMailClient(
        provider=provider,
        sessions=sessions,
        fhevm=fhevm,
        signatures=signatures,
        coordinator=coordinator,
        detach_fhevm=detach,
    )
