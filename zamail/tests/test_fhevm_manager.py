# zamail/tests/test_fhevm_manager.py
"""
ZaMail Tests: FheInstanceManager

Run:
    python -m zamail.tests.test_fhevm_manager
"""

from __future__ import annotations

import asyncio
import sys
from typing import Dict, List

import pytest

from ..devnet import LocalDevnet
from ..errors import InstanceCreationError
from ..fhevm import (
    FheInstanceManager,
    FhevmInstanceFactory,
    FhevmStatus,
    MockCoprocessor,
    MockFhevmInstance,
    NetworkConfig,
    SEPOLIA_CHAIN_ID,
    resolve_network,
)
from ..session import WalletSessionProvider
from .helpers import run_test_functions


LOCAL_CHAINS = {31337: "http://localhost:8545", 1337: "http://localhost:9545"}


class GatedFactory(FhevmInstanceFactory):
    """Instance factory whose creations complete when released."""

    def __init__(self):
        self.gates: Dict[int, asyncio.Event] = {}
        self.completed: List[int] = []

    def gate(self, chain_id: int) -> asyncio.Event:
        return self.gates.setdefault(chain_id, asyncio.Event())

    async def create(self, provider, config: NetworkConfig):
        await self.gate(config.chain_id).wait()
        self.completed.append(config.chain_id)
        return MockFhevmInstance(config, MockCoprocessor(chain_id=config.chain_id))


async def _yield(times: int = 5) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


# =============================================================================
# Network Resolution
# =============================================================================

def test_resolve_network():
    local = resolve_network(31337)
    assert local.is_mock and local.rpc_url == "http://localhost:8545"

    custom = resolve_network(1337, LOCAL_CHAINS)
    assert custom.is_mock and custom.chain_id == 1337 and custom.rpc_url == "http://localhost:9545"

    sepolia = resolve_network(SEPOLIA_CHAIN_ID)
    assert not sepolia.is_mock and sepolia.relayer_url

    with pytest.raises(InstanceCreationError):
        resolve_network(5)


# =============================================================================
# State Machine
# =============================================================================

def test_chain_switch_discards_pending_creation():
    factory = GatedFactory()
    manager = FheInstanceManager(factory, mock_chains=LOCAL_CHAINS)
    provider = object()
    states = []
    manager.subscribe(states.append)

    async def scenario():
        manager.bind(provider, 31337)
        assert manager.status is FhevmStatus.LOADING

        manager.bind(provider, 1337)
        assert manager.status is FhevmStatus.LOADING
        assert manager.state.chain_id == 1337

        # Creation for the old chain completes late
        factory.gate(31337).set()
        await _yield()
        assert factory.completed == [31337]
        assert manager.status is FhevmStatus.LOADING
        assert manager.instance is None

        factory.gate(1337).set()
        state = await manager.settle()
        assert state.is_ready
        assert state.chain_id == 1337
        assert state.instance.chain_id == 1337

    asyncio.run(scenario())

    assert not any(s.status is FhevmStatus.READY and s.chain_id == 31337 for s in states)
    assert [(s.status, s.chain_id) for s in states] == [
        (FhevmStatus.IDLE, 31337),
        (FhevmStatus.LOADING, 31337),
        (FhevmStatus.IDLE, 1337),
        (FhevmStatus.LOADING, 1337),
        (FhevmStatus.READY, 1337),
    ]


def test_devnet_instance_ready():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())

    async def scenario():
        manager.bind(devnet.provider(0), 31337)
        return await manager.ensure()

    state = asyncio.run(scenario())
    assert state.status is FhevmStatus.READY
    assert isinstance(state.instance, MockFhevmInstance)
    assert state.instance.coprocessor is devnet.coprocessor
    assert state.error is None


def test_unsupported_chain_is_error_state():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())

    async def scenario():
        manager.bind(devnet.provider(0), 5)
        return await manager.ensure()

    state = asyncio.run(scenario())
    assert state.status is FhevmStatus.ERROR
    assert "Unsupported chain id 5" in state.error
    assert state.instance is None


def test_live_chain_without_backend_is_error_state():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())

    async def scenario():
        manager.bind(devnet.provider(0), SEPOLIA_CHAIN_ID)
        return await manager.ensure()

    state = asyncio.run(scenario())
    assert state.status is FhevmStatus.ERROR
    assert "No FHEVM backend" in state.error


def test_mock_chain_requires_hardhat_node():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())
    provider = devnet.provider(0, client_version="Geth/v1.13.0")

    async def scenario():
        manager.bind(provider, 31337)
        return await manager.ensure()

    state = asyncio.run(scenario())
    assert state.status is FhevmStatus.ERROR
    assert "not a Hardhat node" in state.error


def test_disabled_stays_idle():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory(), enabled=False)

    async def scenario():
        manager.bind(devnet.provider(0), 31337)
        return await manager.ensure()

    state = asyncio.run(scenario())
    assert state.status is FhevmStatus.IDLE
    assert state.instance is None


def test_bind_outside_loop_defers_to_ensure():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())

    manager.bind(devnet.provider(0), 31337)
    assert manager.status is FhevmStatus.IDLE

    state = asyncio.run(manager.ensure())
    assert state.is_ready


def test_rebind_same_inputs_is_noop():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())
    provider = devnet.provider(0)

    async def scenario():
        manager.bind(provider, 31337)
        first = (await manager.settle()).instance
        manager.bind(provider, 31337)
        assert manager.instance is first

        manager.refresh()
        second = (await manager.settle()).instance
        assert second is not None and second is not first

    asyncio.run(scenario())


def test_provider_change_invalidates():
    devnet = LocalDevnet()
    manager = FheInstanceManager(devnet.instance_factory())

    async def scenario():
        manager.bind(devnet.provider(0), 31337)
        first = (await manager.settle()).instance
        manager.bind(devnet.provider(1), 31337)
        second = (await manager.settle()).instance
        assert second is not first

    asyncio.run(scenario())


def test_attach_follows_session_chain():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)
    manager = FheInstanceManager(devnet.instance_factory())
    manager.attach(sessions)

    async def scenario():
        await sessions.connect()
        state = await manager.settle()
        assert state.is_ready and state.chain_id == 31337

        await provider.switch_chain(5)
        assert manager.instance is None
        state = await manager.settle()
        assert state.status is FhevmStatus.ERROR
        assert state.chain_id == 5

        await provider.switch_chain(31337)
        state = await manager.settle()
        assert state.is_ready and state.chain_id == 31337

    asyncio.run(scenario())


# =============================================================================
# Main Test Runner
# =============================================================================

def run_tests() -> bool:
    return run_test_functions("ZAMAIL: FHEVM MANAGER TESTS", [
        test_resolve_network,
        test_chain_switch_discards_pending_creation,
        test_devnet_instance_ready,
        test_unsupported_chain_is_error_state,
        test_live_chain_without_backend_is_error_state,
        test_mock_chain_requires_hardhat_node,
        test_disabled_stays_idle,
        test_bind_outside_loop_defers_to_ensure,
        test_rebind_same_inputs_is_noop,
        test_provider_change_invalidates,
        test_attach_follows_session_chain,
    ])


if __name__ == "__main__":
    sys.exit(0 if run_tests() else 1)
