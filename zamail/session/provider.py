# zamail/session/provider.py
"""
ZaMail Session: Wallet Session Provider

Tracks the connected address, chain id, signer and read-only provider of
an EIP-1193 wallet and publishes an immutable WalletSession snapshot to
subscribers whenever the account or the network changes.

Long-running operations capture `chain_id` / `address` before they
suspend and call `same_chain()` / `same_signer()` when they resume, so a
result computed for an old context is never committed.

Usage:
    sessions = WalletSessionProvider(provider)
    session = await sessions.connect()

    captured_chain, captured_address = session.chain_id, session.address
    result = await something_slow()
    if sessions.same_chain(captured_chain) and sessions.same_signer(captured_address):
        commit(result)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Callable, Tuple

from web3 import AsyncWeb3, Web3

from ..adapters import (
    EthereumProvider,
    Signer,
    WalletEvent,
    Eip1193Signer,
    Eip1193Web3Provider,
    ETH_REQUEST_ACCOUNTS,
    ETH_ACCOUNTS,
    ETH_CHAIN_ID,
)
from ..errors import WalletNotConnectedError
from ..fhevm.networks import DEFAULT_MOCK_CHAINS


logger = logging.getLogger("zamail.session")


# =============================================================================
# Session Snapshot
# =============================================================================

@dataclass(frozen=True)
class WalletSession:
    """Immutable snapshot of a connected wallet."""
    address: str
    chain_id: int
    signer: Signer
    readonly_provider: Any  # AsyncWeb3

    @property
    def key(self) -> Tuple[str, int]:
        return (self.address.lower(), self.chain_id)


SessionCallback = Callable[[Optional[WalletSession]], None]


def build_readonly_provider(
    provider: EthereumProvider,
    chain_id: int,
    mock_chains: Dict[int, str],
) -> AsyncWeb3:
    """
    Read-only web3 access for a chain.

    Local mock chains are read straight from the node's RPC URL; any other
    chain is read through the wallet provider.
    """
    rpc_url = mock_chains.get(chain_id)
    if rpc_url is not None:
        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
    return AsyncWeb3(Eip1193Web3Provider(provider))


# =============================================================================
# WalletSessionProvider
# =============================================================================

class WalletSessionProvider:
    """
    Observer over an EIP-1193 provider.

    The session is replaced wholesale on account or chain change and set
    to None on disconnect; subscribers receive the new snapshot.
    """

    def __init__(
        self,
        provider: Optional[EthereumProvider],
        mock_chains: Optional[Dict[int, str]] = None,
    ):
        """
        Args:
            provider: Wallet provider (window.ethereum or mock), None if absent
            mock_chains: Local test chains {chain_id: rpc_url}
        """
        self._provider = provider
        self._mock_chains = dict(DEFAULT_MOCK_CHAINS if mock_chains is None else mock_chains)
        self._chain_id: Optional[int] = None
        self._accounts: List[str] = []
        self._session: Optional[WalletSession] = None
        self._subscribers: List[SessionCallback] = []
        self._listening = False

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def provider(self) -> Optional[EthereumProvider]:
        return self._provider

    @property
    def mock_chains(self) -> Dict[int, str]:
        return dict(self._mock_chains)

    @property
    def session(self) -> Optional[WalletSession]:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id

    @property
    def address(self) -> Optional[str]:
        return self._session.address if self._session else None

    @property
    def signer(self) -> Optional[Signer]:
        return self._session.signer if self._session else None

    @property
    def readonly_provider(self) -> Optional[AsyncWeb3]:
        return self._session.readonly_provider if self._session else None

    # =========================================================================
    # Snapshot Predicates
    # =========================================================================

    def same_chain(self, captured_chain_id: Optional[int]) -> bool:
        """True if the live chain id still equals the captured one."""
        return captured_chain_id is not None and captured_chain_id == self._chain_id

    def same_signer(self, captured_address: Optional[str]) -> bool:
        """True if the live signer is still the captured address."""
        current = self.address
        if captured_address is None or current is None:
            return False
        return captured_address.lower() == current.lower()

    # =========================================================================
    # Connection
    # =========================================================================

    async def start(self) -> Optional[WalletSession]:
        """
        Pick up an already-authorized wallet without prompting.

        Returns:
            The restored session, or None if the wallet is not authorized
        """
        if self._provider is None:
            return None
        self._listen()
        previous = self._snapshot_key()
        self._chain_id = int(await self._provider.request(ETH_CHAIN_ID), 16)
        self._accounts = list(await self._provider.request(ETH_ACCOUNTS) or [])
        self._rebuild(previous)
        return self._session

    async def connect(self) -> WalletSession:
        """
        Request wallet authorization.

        Raises:
            WalletNotConnectedError: If no provider, the user declines, or
                no account is returned
        """
        if self._provider is None:
            raise WalletNotConnectedError("No Ethereum provider available")

        try:
            accounts = await self._provider.request(ETH_REQUEST_ACCOUNTS)
        except Exception as e:
            raise WalletNotConnectedError(f"Wallet connection declined: {e}") from e
        if not accounts:
            raise WalletNotConnectedError("No accounts available")

        self._listen()
        previous = self._snapshot_key()
        self._chain_id = int(await self._provider.request(ETH_CHAIN_ID), 16)
        self._accounts = list(accounts)
        self._rebuild(previous)

        logger.info("Wallet connected: %s on chain %s", self.address, self._chain_id)
        return self._session

    async def disconnect(self) -> None:
        """Drop the session and stop following the provider."""
        self._unlisten()
        previous = self._snapshot_key()
        self._accounts = []
        self._rebuild(previous)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Register a session observer.

        Returns:
            Function that removes the observer
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._session)
            except Exception:
                logger.exception("Session subscriber %r failed", callback)

    # =========================================================================
    # Provider Events
    # =========================================================================

    def _listen(self) -> None:
        if self._listening or self._provider is None:
            return
        self._provider.on(WalletEvent.ACCOUNTS_CHANGED.value, self._on_accounts_changed)
        self._provider.on(WalletEvent.CHAIN_CHANGED.value, self._on_chain_changed)
        self._provider.on(WalletEvent.DISCONNECT.value, self._on_disconnect)
        self._listening = True

    def _unlisten(self) -> None:
        if not self._listening or self._provider is None:
            return
        self._provider.remove_listener(WalletEvent.ACCOUNTS_CHANGED.value, self._on_accounts_changed)
        self._provider.remove_listener(WalletEvent.CHAIN_CHANGED.value, self._on_chain_changed)
        self._provider.remove_listener(WalletEvent.DISCONNECT.value, self._on_disconnect)
        self._listening = False

    def _on_accounts_changed(self, accounts: List[str]) -> None:
        previous = self._snapshot_key()
        self._accounts = list(accounts or [])
        logger.info("Accounts changed: %s", self._accounts[0] if self._accounts else "none")
        self._rebuild(previous)

    def _on_chain_changed(self, chain_id_hex: str) -> None:
        previous = self._snapshot_key()
        self._chain_id = int(chain_id_hex, 16)
        logger.info("Chain changed: %s", self._chain_id)
        self._rebuild(previous)

    def _on_disconnect(self, error: Any = None) -> None:
        previous = self._snapshot_key()
        self._accounts = []
        logger.info("Provider disconnected: %s", error)
        self._rebuild(previous)

    # =========================================================================
    # Snapshot Management
    # =========================================================================

    def _snapshot_key(self) -> Tuple[Optional[str], Optional[int]]:
        address = self._accounts[0].lower() if self._accounts else None
        return (address, self._chain_id)

    def _rebuild(self, previous: Tuple[Optional[str], Optional[int]]) -> None:
        if self._snapshot_key() == previous and (self._session is not None) == bool(self._accounts):
            return

        if self._accounts and self._chain_id is not None and self._provider is not None:
            address = Web3.to_checksum_address(self._accounts[0])
            self._session = WalletSession(
                address=address,
                chain_id=self._chain_id,
                signer=Eip1193Signer(self._provider, address),
                readonly_provider=build_readonly_provider(
                    self._provider, self._chain_id, self._mock_chains
                ),
            )
        else:
            self._session = None

        self._publish()
