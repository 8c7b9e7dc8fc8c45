# zamail/tests/test_signatures.py
"""
ZaMail Tests: DecryptionSignatureStore

Run:
    python -m zamail.tests.test_signatures
"""

from __future__ import annotations

import asyncio
import json
import sys
import tempfile
from pathlib import Path

import pytest

from ..adapters import Eip1193Signer, ETH_SIGN_TYPED_DATA
from ..devnet import LocalDevnet
from ..errors import SignatureRejectedError, WalletNotConnectedError
from ..fhevm import MockFhevmInstance, resolve_network
from ..signatures import (
    DecryptionSignature,
    DecryptionSignatureStore,
    InMemoryStorage,
    JsonFileStorage,
    storage_key,
)
from .helpers import FakeClock, LocalAccountSigner, run_test_functions


SECONDS_PER_DAY = 86400


class Fixture:
    """Devnet user 0 with a wallet signer and a mock instance."""

    def __init__(self, **provider_kwargs):
        provider_kwargs.setdefault("authorized", True)
        self.devnet = LocalDevnet()
        self.provider = self.devnet.provider(0, **provider_kwargs)
        self.user = self.devnet.address(0)
        self.contract = self.devnet.board.address
        self.signer = Eip1193Signer(self.provider, self.user)
        self.instance = MockFhevmInstance(resolve_network(31337), self.devnet.coprocessor)

    @property
    def prompts(self) -> int:
        return self.provider.count(ETH_SIGN_TYPED_DATA)

    async def get(self, store: DecryptionSignatureStore) -> DecryptionSignature:
        return await store.get_or_create(
            self.contract, self.user, instance=self.instance, signer=self.signer
        )


# =============================================================================
# Issuing and Caching
# =============================================================================

def test_concurrent_requests_share_one_prompt():
    fx = Fixture(latency=0.01)
    store = DecryptionSignatureStore()

    async def scenario():
        first, second = await asyncio.gather(fx.get(store), fx.get(store))
        assert first is second
        assert store.pending_count() == 0

    asyncio.run(scenario())
    assert fx.prompts == 1


def test_cached_signature_is_reused():
    fx = Fixture()
    store = DecryptionSignatureStore()

    async def scenario():
        first = await fx.get(store)
        second = await fx.get(store)
        assert first is second

    asyncio.run(scenario())
    assert fx.prompts == 1


def test_signature_contents():
    fx = Fixture()
    clock = FakeClock()
    store = DecryptionSignatureStore(clock=clock)

    signature = asyncio.run(fx.get(store))
    assert signature.user_address == fx.user
    assert signature.contract_addresses == (fx.contract,)
    assert signature.chain_id == 31337
    assert signature.start_timestamp == int(clock.now)
    assert signature.duration_days == fx.instance.signature_duration_days == 365
    assert len(signature.signature) == 65
    assert signature.is_valid(clock.now)
    assert signature.matches(31337, fx.contract.lower(), fx.user.lower())
    assert not signature.matches(1, fx.contract, fx.user)


def test_duration_override():
    fx = Fixture()
    store = DecryptionSignatureStore(duration_days=7)
    assert asyncio.run(fx.get(store)).duration_days == 7


def test_persisted_signature_survives_new_store():
    fx = Fixture()
    storage = InMemoryStorage()

    first = asyncio.run(fx.get(DecryptionSignatureStore(storage)))
    assert storage_key(31337, fx.contract, fx.user) in storage

    second = asyncio.run(fx.get(DecryptionSignatureStore(storage)))
    assert second == first
    assert fx.prompts == 1


def test_expired_signature_is_replaced():
    fx = Fixture()
    clock = FakeClock()
    store = DecryptionSignatureStore(duration_days=1, clock=clock)

    async def scenario():
        first = await fx.get(store)
        clock.advance(2 * SECONDS_PER_DAY)
        second = await fx.get(store)
        assert second is not first
        assert second.start_timestamp == int(clock.now)

    asyncio.run(scenario())
    assert fx.prompts == 2


def test_corrupt_stored_entry_is_resigned():
    corrupt_entries = [
        "{not json",
        '{"signature": 5}',
        '{"signature": null}',
        "[]",
    ]
    for entry in corrupt_entries:
        fx = Fixture()
        storage = InMemoryStorage()
        key = storage_key(31337, fx.contract, fx.user)
        storage.set_item(key, entry)
        store = DecryptionSignatureStore(storage)

        signature = asyncio.run(fx.get(store))
        assert fx.prompts == 1, entry
        assert DecryptionSignature.from_json(storage.get_item(key)) == signature


def test_non_string_signature_field_is_rejected():
    fx = Fixture()
    signature = asyncio.run(fx.get(DecryptionSignatureStore()))
    data = signature.to_dict()
    data["signature"] = 5
    with pytest.raises(ValueError):
        DecryptionSignature.from_dict(data)


def test_invalidate_and_clear():
    fx = Fixture()
    storage = InMemoryStorage()
    store = DecryptionSignatureStore(storage)

    async def scenario():
        await fx.get(store)
        store.invalidate(31337, fx.contract, fx.user)
        assert store.get(31337, fx.contract, fx.user) is None
        await fx.get(store)
        store.clear()
        assert len(storage) == 0

    asyncio.run(scenario())
    assert fx.prompts == 2


# =============================================================================
# Failures
# =============================================================================

def test_rejection_caches_nothing():
    fx = Fixture(auto_approve=False, latency=0.01)
    storage = InMemoryStorage()
    store = DecryptionSignatureStore(storage)

    async def scenario():
        results = await asyncio.gather(fx.get(store), fx.get(store), return_exceptions=True)
        assert all(isinstance(r, SignatureRejectedError) for r in results)
        assert store.pending_count() == 0
        assert store.get(31337, fx.contract, fx.user) is None
        assert len(storage) == 0

        # No automatic retry: the next call prompts again
        fx.provider.auto_approve = True
        await fx.get(store)

    asyncio.run(scenario())
    assert fx.prompts == 2


def test_signer_must_be_user():
    fx = Fixture()
    store = DecryptionSignatureStore()
    other = LocalAccountSigner(fx.devnet.accounts[1])

    async def scenario():
        with pytest.raises(WalletNotConnectedError):
            await store.get_or_create(
                fx.contract, fx.user, instance=fx.instance, signer=other
            )

    asyncio.run(scenario())
    assert other.signatures == 0


def test_local_signer_signature_decrypts():
    fx = Fixture()
    store = DecryptionSignatureStore()
    account = fx.devnet.accounts[0]
    signer = LocalAccountSigner(account)

    async def scenario():
        encrypted = fx.devnet.coprocessor.encrypt(1234, fx.contract, fx.user)
        fx.devnet.coprocessor.allow(encrypted.handle, fx.contract)
        fx.devnet.coprocessor.allow(encrypted.handle, fx.user)
        signature = await store.get_or_create(
            fx.contract, fx.user, instance=fx.instance, signer=signer
        )
        return await fx.instance.decrypt([encrypted.handle], signature, fx.contract, fx.user)

    result = asyncio.run(scenario())
    assert list(result.values()) == [1234]
    assert signer.signatures == 1


# =============================================================================
# Storage Backends
# =============================================================================

def test_json_file_storage():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "nested" / "signatures.json"
        storage = JsonFileStorage(path)
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.remove_item("a")

        reopened = JsonFileStorage(path)
        assert reopened.get_item("a") is None
        assert reopened.get_item("b") == "2"
        assert json.loads(path.read_text()) == {"b": "2"}

        path.write_text("garbage")
        assert len(JsonFileStorage(path)) == 0


def test_signature_json_roundtrip():
    signature = DecryptionSignature(
        public_key="0x01",
        private_key="0x02",
        signature=b"\x03" * 65,
        start_timestamp=100,
        duration_days=1,
        contract_addresses=("0x5FbDB2315678afecb367f032d93F642f64180aa3",),
        user_address="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
        chain_id=31337,
    )
    assert DecryptionSignature.from_json(signature.to_json()) == signature
    assert signature.expires_at == 100 + SECONDS_PER_DAY
    assert signature.is_valid(100) and not signature.is_valid(100 + SECONDS_PER_DAY)
    assert "private_key" not in repr(signature)


# =============================================================================
# Main Test Runner
# =============================================================================

def run_tests() -> bool:
    return run_test_functions("ZAMAIL: SIGNATURE STORE TESTS", [
        test_concurrent_requests_share_one_prompt,
        test_cached_signature_is_reused,
        test_signature_contents,
        test_duration_override,
        test_persisted_signature_survives_new_store,
        test_expired_signature_is_replaced,
        test_corrupt_stored_entry_is_resigned,
        test_non_string_signature_field_is_rejected,
        test_invalidate_and_clear,
        test_rejection_caches_nothing,
        test_signer_must_be_user,
        test_local_signer_signature_decrypts,
        test_json_file_storage,
        test_signature_json_roundtrip,
    ])


if __name__ == "__main__":
    sys.exit(0 if run_tests() else 1)
