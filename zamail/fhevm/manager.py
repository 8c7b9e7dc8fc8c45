# zamail/fhevm/manager.py
"""
ZaMail FHEVM: Instance Manager

Lazily builds and caches the FHEVM instance for the current chain.

State machine:
    IDLE    --(enabled & provider & chain_id)--> LOADING
    LOADING --(success)-------------------------> READY
    LOADING --(failure)-------------------------> ERROR
    any     --(chain_id or provider changes)----> IDLE   (in-flight creation discarded)

The cache key is (provider, chain_id, enabled). Changing any of them
invalidates the current instance. A creation that completes after its key
was invalidated is dropped without touching the state; nothing is
cancelled preemptively.

Usage:
    manager = FheInstanceManager(DefaultInstanceFactory(coprocessor))
    manager.attach(sessions)          # follow wallet chain changes
    state = await manager.ensure()
    if state.is_ready:
        encrypted = await state.instance.encrypt(42, contract, user)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, List, Callable, TYPE_CHECKING

from ..adapters import EthereumProvider
from .instance import FhevmInstance, FhevmInstanceFactory
from .networks import resolve_network

if TYPE_CHECKING:
    from ..session import WalletSession, WalletSessionProvider


logger = logging.getLogger("zamail.fhevm")


# =============================================================================
# State
# =============================================================================

class FhevmStatus(Enum):
    """FHEVM instance lifecycle."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class FhevmState:
    """Immutable snapshot of the manager state."""
    status: FhevmStatus = FhevmStatus.IDLE
    chain_id: Optional[int] = None
    instance: Optional[FhevmInstance] = None
    error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status is FhevmStatus.READY and self.instance is not None


StateCallback = Callable[[FhevmState], None]


# =============================================================================
# FheInstanceManager
# =============================================================================

class FheInstanceManager:
    """Keyed, explicitly invalidated cache of one FHEVM instance."""

    def __init__(
        self,
        factory: FhevmInstanceFactory,
        mock_chains: Optional[Dict[int, str]] = None,
        enabled: bool = True,
    ):
        """
        Args:
            factory: Builds instances for resolved networks
            mock_chains: Local test chains {chain_id: rpc_url}
            enabled: Whether instances are created at all
        """
        self._factory = factory
        self._mock_chains = mock_chains
        self._enabled = enabled
        self._provider: Optional[EthereumProvider] = None
        self._chain_id: Optional[int] = None
        self._generation = 0
        self._state = FhevmState()
        self._task: Optional[asyncio.Task] = None
        self._subscribers: List[StateCallback] = []

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> FhevmState:
        return self._state

    @property
    def status(self) -> FhevmStatus:
        return self._state.status

    @property
    def instance(self) -> Optional[FhevmInstance]:
        return self._state.instance

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id

    @property
    def enabled(self) -> bool:
        return self._enabled

    # =========================================================================
    # Inputs
    # =========================================================================

    def bind(
        self,
        provider: Optional[EthereumProvider],
        chain_id: Optional[int],
        enabled: Optional[bool] = None,
    ) -> FhevmState:
        """
        Set the inputs the instance is built from.

        Unchanged inputs are a no-op (an ERROR state is kept until
        `refresh()`); changed inputs reset to IDLE and start a new creation.
        """
        if enabled is None:
            enabled = self._enabled
        if (
            provider is self._provider
            and chain_id == self._chain_id
            and enabled == self._enabled
        ):
            return self._state

        self._provider = provider
        self._chain_id = chain_id
        self._enabled = enabled
        self._invalidate()
        self._maybe_start()
        return self._state

    def attach(self, sessions: "WalletSessionProvider") -> Callable[[], None]:
        """
        Follow a WalletSessionProvider: every published session change
        rebinds the provider and chain id.

        Returns:
            Function that detaches the manager
        """
        def on_session(session: Optional["WalletSession"]) -> None:
            self.bind(sessions.provider, sessions.chain_id)

        unsubscribe = sessions.subscribe(on_session)
        self.bind(sessions.provider, sessions.chain_id)
        return unsubscribe

    def refresh(self) -> FhevmState:
        """Discard the current instance and rebuild it for the same inputs."""
        self._invalidate()
        self._maybe_start()
        return self._state

    # =========================================================================
    # Awaiting
    # =========================================================================

    async def ensure(self) -> FhevmState:
        """Start creation if idle, then wait for the outcome."""
        if self._state.status is FhevmStatus.IDLE:
            self._maybe_start()
        return await self.settle()

    async def settle(self) -> FhevmState:
        """Wait until no creation is in flight for the current inputs."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._state

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _set_state(self, state: FhevmState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("FHEVM subscriber %r failed", callback)

    # =========================================================================
    # Creation
    # =========================================================================

    def _invalidate(self) -> None:
        self._generation += 1
        self._task = None
        if self._state != FhevmState(chain_id=self._chain_id):
            logger.info("FHEVM instance reset (chain %s)", self._chain_id)
            self._set_state(FhevmState(chain_id=self._chain_id))

    def _maybe_start(self) -> None:
        if not self._enabled or self._provider is None or self._chain_id is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; FHEVM creation deferred to ensure()")
            return

        generation = self._generation
        chain_id = self._chain_id
        self._set_state(FhevmState(status=FhevmStatus.LOADING, chain_id=chain_id))
        logger.info("Creating FHEVM instance for chain %s", chain_id)
        self._task = loop.create_task(self._create(generation, chain_id, self._provider))

    def _is_current(self, generation: int, chain_id: int) -> bool:
        return generation == self._generation and chain_id == self._chain_id

    async def _create(
        self,
        generation: int,
        chain_id: int,
        provider: EthereumProvider,
    ) -> None:
        try:
            config = resolve_network(chain_id, self._mock_chains)
            instance = await self._factory.create(provider, config)
        except Exception as e:
            if not self._is_current(generation, chain_id):
                logger.debug("Discarding stale FHEVM failure for chain %s: %s", chain_id, e)
                return
            logger.warning("FHEVM instance creation failed for chain %s: %s", chain_id, e)
            self._set_state(FhevmState(status=FhevmStatus.ERROR, chain_id=chain_id, error=str(e)))
            return

        if not self._is_current(generation, chain_id):
            logger.debug("Discarding stale FHEVM instance for chain %s", chain_id)
            return

        logger.info("FHEVM instance ready for chain %s", chain_id)
        self._set_state(FhevmState(status=FhevmStatus.READY, chain_id=chain_id, instance=instance))
