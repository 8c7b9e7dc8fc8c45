# zamail/tests/test_session.py
"""
ZaMail Tests: WalletSessionProvider

Run:
    python -m zamail.tests.test_session
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from ..adapters import Eip1193Web3Provider, ETH_REQUEST_ACCOUNTS, WalletEvent
from ..devnet import LocalDevnet
from ..errors import WalletNotConnectedError
from ..fhevm import SEPOLIA_CHAIN_ID
from ..session import WalletSessionProvider
from .helpers import run_test_functions


# =============================================================================
# Connect
# =============================================================================

def test_connect_builds_session():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)

    async def scenario():
        session = await sessions.connect()
        assert session.address == devnet.address(0)
        assert session.chain_id == 31337
        assert session.signer.address == devnet.address(0)
        assert sessions.is_connected
        assert sessions.same_chain(31337)
        assert sessions.same_signer(devnet.address(0).lower())
        assert not sessions.same_signer(devnet.address(1))
        assert not sessions.same_chain(1)

    asyncio.run(scenario())


def test_connect_declined():
    devnet = LocalDevnet()
    sessions = WalletSessionProvider(devnet.provider(0, approve_connect=False))

    async def scenario():
        with pytest.raises(WalletNotConnectedError):
            await sessions.connect()
        assert sessions.session is None
        assert not sessions.same_signer(devnet.address(0))

    asyncio.run(scenario())


def test_connect_without_provider():
    sessions = WalletSessionProvider(None)

    async def scenario():
        with pytest.raises(WalletNotConnectedError):
            await sessions.connect()
        assert await sessions.start() is None

    asyncio.run(scenario())


# =============================================================================
# Provider Events
# =============================================================================

def test_chain_change_replaces_session():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)
    published = []
    sessions.subscribe(published.append)

    async def scenario():
        first = await sessions.connect()
        await provider.switch_chain(SEPOLIA_CHAIN_ID)
        second = sessions.session

        assert second is not first
        assert second.chain_id == SEPOLIA_CHAIN_ID
        assert second.address == first.address
        assert not sessions.same_chain(31337)
        assert sessions.same_chain(SEPOLIA_CHAIN_ID)
        assert published[-1] is second
        # Non-mock chains are read through the wallet
        assert isinstance(second.readonly_provider.provider, Eip1193Web3Provider)
        assert not isinstance(first.readonly_provider.provider, Eip1193Web3Provider)

    asyncio.run(scenario())


def test_account_change_replaces_session():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)

    async def scenario():
        await sessions.connect()
        await provider.switch_account(devnet.address(1))

        assert sessions.address == devnet.address(1)
        assert sessions.signer.address == devnet.address(1)
        assert not sessions.same_signer(devnet.address(0))
        assert sessions.same_chain(31337)

    asyncio.run(scenario())


def test_lock_drops_session():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)
    published = []
    sessions.subscribe(published.append)

    async def scenario():
        await sessions.connect()
        await provider.lock()
        assert sessions.session is None
        assert published[-1] is None
        assert not sessions.same_signer(devnet.address(0))

    asyncio.run(scenario())


def test_unchanged_event_does_not_publish():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)
    published = []

    async def scenario():
        await sessions.connect()
        sessions.subscribe(published.append)
        await provider._emit(WalletEvent.ACCOUNTS_CHANGED.value, provider.addresses)
        assert published == []

    asyncio.run(scenario())


# =============================================================================
# Restore / Disconnect
# =============================================================================

def test_start_restores_without_prompt():
    devnet = LocalDevnet()
    provider = devnet.provider(0, authorized=True)
    sessions = WalletSessionProvider(provider)

    async def scenario():
        session = await sessions.start()
        assert session is not None
        assert session.address == devnet.address(0)
        assert provider.count(ETH_REQUEST_ACCOUNTS) == 0

    asyncio.run(scenario())


def test_start_unauthorized_stays_disconnected():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)

    async def scenario():
        assert await sessions.start() is None
        assert sessions.chain_id == 31337
        assert not sessions.is_connected

    asyncio.run(scenario())


def test_disconnect_detaches_listeners():
    devnet = LocalDevnet()
    provider = devnet.provider(0)
    sessions = WalletSessionProvider(provider)

    async def scenario():
        await sessions.connect()
        assert provider.listener_count(WalletEvent.CHAIN_CHANGED.value) == 1
        await sessions.disconnect()
        assert sessions.session is None
        assert provider.listener_count(WalletEvent.CHAIN_CHANGED.value) == 0
        assert provider.listener_count(WalletEvent.ACCOUNTS_CHANGED.value) == 0

        await provider.switch_chain(SEPOLIA_CHAIN_ID)
        assert sessions.chain_id == 31337

    asyncio.run(scenario())


def test_failing_subscriber_does_not_block_others():
    devnet = LocalDevnet()
    sessions = WalletSessionProvider(devnet.provider(0))
    received = []

    def broken(session):
        raise RuntimeError("boom")

    sessions.subscribe(broken)
    sessions.subscribe(received.append)

    async def scenario():
        await sessions.connect()
        assert received and received[-1] is sessions.session

    asyncio.run(scenario())


def test_unsubscribe():
    devnet = LocalDevnet()
    sessions = WalletSessionProvider(devnet.provider(0))
    received = []
    unsubscribe = sessions.subscribe(received.append)
    unsubscribe()

    asyncio.run(sessions.connect())
    assert received == []


# =============================================================================
# Main Test Runner
# =============================================================================

def run_tests() -> bool:
    return run_test_functions("ZAMAIL: SESSION TESTS", [
        test_connect_builds_session,
        test_connect_declined,
        test_connect_without_provider,
        test_chain_change_replaces_session,
        test_account_change_replaces_session,
        test_lock_drops_session,
        test_unchanged_event_does_not_publish,
        test_start_restores_without_prompt,
        test_start_unauthorized_stays_disconnected,
        test_disconnect_detaches_listeners,
        test_failing_subscriber_does_not_block_others,
        test_unsubscribe,
    ])


if __name__ == "__main__":
    sys.exit(0 if run_tests() else 1)
