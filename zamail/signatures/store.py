# zamail/signatures/store.py
"""
ZaMail Signatures: Decryption Signature Store

Issues and caches user decryption authorizations per
(chain, contract, user).

Lookup order:
    1. In-memory cache
    2. Persisted StringStorage
    3. Wallet prompt (at most one in flight per key)

Concurrent callers for the same key attach to the pending request, so the
user sees a single signing prompt. A rejected prompt caches nothing and
is reported to every waiting caller.

Usage:
    store = DecryptionSignatureStore(JsonFileStorage("~/.zamail/sigs.json"))
    sig = await store.get_or_create(contract, user, instance=inst, signer=signer)
    clear = await inst.decrypt([handle], sig, contract, user)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Dict, Tuple, Callable

from web3 import Web3

from ..adapters import Signer, ProviderRpcError, is_user_rejection
from ..errors import WalletNotConnectedError, SignatureRejectedError
from ..fhevm.instance import FhevmInstance
from .signature import DecryptionSignature, storage_key, parse_signature
from .storage import StringStorage, InMemoryStorage


logger = logging.getLogger("zamail.signatures")

SignatureKey = Tuple[int, str, str]


class DecryptionSignatureStore:
    """Per-key cache of decryption signatures with request de-duplication."""

    def __init__(
        self,
        storage: Optional[StringStorage] = None,
        duration_days: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            storage: Persisted storage (in-memory if None)
            duration_days: Validity window override (instance default if None)
            clock: Time source in unix seconds
        """
        self._storage = storage if storage is not None else InMemoryStorage()
        self._duration_days = duration_days
        self._clock = clock
        self._memory: Dict[SignatureKey, DecryptionSignature] = {}
        self._pending: Dict[SignatureKey, asyncio.Task] = {}

    @property
    def storage(self) -> StringStorage:
        return self._storage

    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Public API
    # =========================================================================

    async def get_or_create(
        self,
        contract_address: str,
        user_address: str,
        *,
        instance: FhevmInstance,
        signer: Signer,
    ) -> DecryptionSignature:
        """
        Return a valid signature for (contract, user), prompting if needed.

        Raises:
            WalletNotConnectedError: If the signer is not `user_address`
            SignatureRejectedError: If the user rejects the prompt
        """
        if signer.address.lower() != user_address.lower():
            raise WalletNotConnectedError(
                f"Signer {signer.address} is not the requesting account {user_address}"
            )

        key = self._key(instance.chain_id, contract_address, user_address)
        cached = self.get(instance.chain_id, contract_address, user_address)
        if cached is not None:
            return cached

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._request(key, contract_address, user_address, instance, signer)
            )
            self._pending[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug("Joining pending signature request for %s", key)

        return await asyncio.shield(task)

    def get(
        self,
        chain_id: int,
        contract_address: str,
        user_address: str,
    ) -> Optional[DecryptionSignature]:
        """Cached valid signature for the key, without prompting."""
        key = self._key(chain_id, contract_address, user_address)
        now = self._clock()

        signature = self._memory.get(key)
        if signature is not None:
            if self._usable(signature, key, now):
                return signature
            del self._memory[key]

        name = storage_key(*key)
        try:
            signature = parse_signature(self._storage.get_item(name))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding corrupt stored signature %s: %s", name, e)
            self._storage.remove_item(name)
            return None

        if signature is None:
            return None
        if not self._usable(signature, key, now):
            logger.debug("Dropping expired stored signature %s", name)
            self._storage.remove_item(name)
            return None

        self._memory[key] = signature
        return signature

    def invalidate(self, chain_id: int, contract_address: str, user_address: str) -> None:
        """Forget the signature for one key (memory and storage)."""
        key = self._key(chain_id, contract_address, user_address)
        self._memory.pop(key, None)
        self._storage.remove_item(storage_key(*key))

    def clear(self) -> None:
        """Forget every signature."""
        self._memory.clear()
        self._storage.clear()

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _key(chain_id: int, contract_address: str, user_address: str) -> SignatureKey:
        return (int(chain_id), contract_address.lower(), user_address.lower())

    @staticmethod
    def _usable(signature: DecryptionSignature, key: SignatureKey, now: float) -> bool:
        chain_id, contract_address, user_address = key
        return signature.is_valid(now) and signature.matches(chain_id, contract_address, user_address)

    def _forget(self, key: SignatureKey, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled():
            # Mark the outcome as retrieved even if every waiter went away.
            task.exception()

    async def _request(
        self,
        key: SignatureKey,
        contract_address: str,
        user_address: str,
        instance: FhevmInstance,
        signer: Signer,
    ) -> DecryptionSignature:
        keypair = instance.generate_keypair()
        start_timestamp = int(self._clock())
        duration_days = self._duration_days or instance.signature_duration_days
        contracts = (Web3.to_checksum_address(contract_address),)

        typed_data = instance.create_eip712(
            keypair.public_key, list(contracts), start_timestamp, duration_days
        )

        logger.info("Requesting decryption signature from %s", user_address)
        try:
            raw = await signer.sign_typed_data(typed_data)
        except SignatureRejectedError:
            logger.warning("Decryption signature rejected by %s", user_address)
            raise
        except ProviderRpcError as e:
            if is_user_rejection(e):
                logger.warning("Decryption signature rejected by %s", user_address)
                raise SignatureRejectedError(str(e)) from e
            raise

        signature = DecryptionSignature(
            public_key=keypair.public_key,
            private_key=keypair.private_key,
            signature=bytes(raw),
            start_timestamp=start_timestamp,
            duration_days=duration_days,
            contract_addresses=contracts,
            user_address=Web3.to_checksum_address(user_address),
            chain_id=key[0],
        )
        self._memory[key] = signature
        self._storage.set_item(storage_key(*key), signature.to_json())
        logger.info("Decryption signature cached for %s on chain %s", user_address, key[0])
        return signature
