# zamail/fhevm/mock.py
"""
ZaMail FHEVM: Local Mock Coprocessor

Offline stand-in for the FHEVM coprocessor and KMS of a local development
chain. It is NOT homomorphic: values are sealed with ChaCha20-Poly1305
under a per-chain key, which is enough to exercise the full
encrypt → store handle → authorize → decrypt flow without a relayer.

What it does enforce, like the real network:
    - input proofs bind a handle to (contract, user)
    - a per-handle ACL (contract and accounts allowed by the contract)
    - user decryption requires a valid EIP-712 authorization signed by the
      requesting user, inside its validity window, naming the contract

Usage:
    coprocessor = MockCoprocessor(chain_id=31337)
    instance = MockFhevmInstance(resolve_network(31337), coprocessor)
    encrypted = await instance.encrypt(42, contract, alice)
"""

from __future__ import annotations

import asyncio
import hashlib
import secrets
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any, Sequence, Set, Callable, TYPE_CHECKING

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from ..errors import DecryptionFailedError
from .instance import FhevmInstance, EncryptedInput, KeyPair
from .networks import NetworkConfig, HARDHAT_CHAIN_ID

if TYPE_CHECKING:
    from ..signatures.signature import DecryptionSignature


UINT64_MAX = 2 ** 64 - 1
SECONDS_PER_DAY = 86400


# =============================================================================
# Exceptions
# =============================================================================

class InputProofError(ValueError):
    """Input proof does not match the handle, contract and user."""
    pass


# =============================================================================
# Coprocessor
# =============================================================================

@dataclass(frozen=True)
class _SealedValue:
    nonce: bytes
    ciphertext: bytes
    aad: bytes


class MockCoprocessor:
    """In-process ciphertext registry, ACL and KMS for one local chain."""

    NONCE_BYTES = 12

    def __init__(
        self,
        chain_id: int = HARDHAT_CHAIN_ID,
        key: Optional[bytes] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.chain_id = chain_id
        self._key = key or ChaCha20Poly1305.generate_key()
        self._cipher = ChaCha20Poly1305(self._key)
        self._clock = clock
        self._values: Dict[str, _SealedValue] = {}
        self._acl: Dict[str, Set[str]] = {}
        self.decrypt_requests = 0

    # =========================================================================
    # Inputs
    # =========================================================================

    def encrypt(self, value: int, contract_address: str, user_address: str) -> EncryptedInput:
        """Seal a 64-bit value and issue its handle and input proof."""
        if not 0 <= value <= UINT64_MAX:
            raise ValueError(f"Value out of euint64 range: {value}")

        nonce = secrets.token_bytes(self.NONCE_BYTES)
        aad = self._binding(contract_address, user_address)
        ciphertext = self._cipher.encrypt(nonce, value.to_bytes(8, "big"), aad)
        handle = "0x" + bytes(Web3.keccak(nonce + ciphertext)).hex()

        self._values[handle] = _SealedValue(nonce=nonce, ciphertext=ciphertext, aad=aad)
        return EncryptedInput(
            handle=handle,
            input_proof=self._input_proof(handle, contract_address, user_address),
        )

    def verify_input(
        self,
        handle: str,
        input_proof: str,
        contract_address: str,
        user_address: str,
    ) -> None:
        """
        Check an input proof, as FHE.fromExternal does on-chain.

        Raises:
            InputProofError: If the proof is not for (handle, contract, user)
        """
        if handle not in self._values:
            raise InputProofError(f"Unknown handle {handle}")
        expected = self._input_proof(handle, contract_address, user_address)
        if not secrets.compare_digest(expected, input_proof):
            raise InputProofError("Invalid input proof")

    def _input_proof(self, handle: str, contract_address: str, user_address: str) -> str:
        digest = Web3.keccak(
            self._key + bytes.fromhex(handle[2:]) + self._binding(contract_address, user_address)
        )
        return "0x" + bytes(digest).hex()

    @staticmethod
    def _binding(contract_address: str, user_address: str) -> bytes:
        return bytes.fromhex(contract_address[2:].lower()) + bytes.fromhex(user_address[2:].lower())

    # =========================================================================
    # ACL
    # =========================================================================

    def allow(self, handle: str, account: str) -> None:
        """Grant `account` access to `handle` (FHE.allow)."""
        self._acl.setdefault(handle, set()).add(account.lower())

    def is_allowed(self, handle: str, account: str) -> bool:
        return account.lower() in self._acl.get(handle, set())

    # =========================================================================
    # User Decryption (KMS)
    # =========================================================================

    def user_decrypt(
        self,
        handles: Sequence[str],
        contract_address: str,
        user_address: str,
        typed_data: Dict[str, Any],
        signature: bytes,
    ) -> Dict[str, int]:
        """
        Decrypt handles for a user holding a signed authorization.

        Raises:
            DecryptionFailedError: On a bad signature, expired window,
                contract not covered, ACL refusal or corrupted ciphertext
        """
        self.decrypt_requests += 1
        message = typed_data["message"]

        try:
            signer = Account.recover_message(
                encode_typed_data(full_message=typed_data), signature=signature
            )
        except Exception as e:
            raise DecryptionFailedError(f"Invalid decryption signature: {e}") from e
        if signer.lower() != user_address.lower():
            raise DecryptionFailedError("Decryption signature was not issued by the user")

        now = int(self._clock())
        start = int(message["startTimestamp"])
        end = start + int(message["durationDays"]) * SECONDS_PER_DAY
        if not start <= now < end:
            raise DecryptionFailedError("Decryption signature is outside its validity window")

        allowed_contracts = {a.lower() for a in message["contractAddresses"]}
        if contract_address.lower() not in allowed_contracts:
            raise DecryptionFailedError(
                f"Decryption signature does not cover contract {contract_address}"
            )

        results: Dict[str, int] = {}
        for handle in handles:
            if not self.is_allowed(handle, contract_address):
                raise DecryptionFailedError(f"Contract is not allowed on handle {handle}")
            if not self.is_allowed(handle, user_address):
                raise DecryptionFailedError(f"User is not allowed on handle {handle}")
            results[handle] = self._open(handle)
        return results

    def _open(self, handle: str) -> int:
        sealed = self._values.get(handle)
        if sealed is None:
            raise DecryptionFailedError(f"Unknown handle {handle}")
        try:
            plaintext = self._cipher.decrypt(sealed.nonce, sealed.ciphertext, sealed.aad)
        except InvalidTag as e:
            raise DecryptionFailedError(f"Corrupted ciphertext for {handle}") from e
        return int.from_bytes(plaintext, "big")


# =============================================================================
# Mock Instance
# =============================================================================

class MockFhevmInstance(FhevmInstance):
    """FHEVM instance for a local chain, backed by a MockCoprocessor."""

    def __init__(self, config: NetworkConfig, coprocessor: MockCoprocessor):
        super().__init__(config)
        self._coprocessor = coprocessor
        self.decrypt_calls = 0

    @property
    def coprocessor(self) -> MockCoprocessor:
        return self._coprocessor

    async def encrypt(self, value: int, contract_address: str, user_address: str) -> EncryptedInput:
        await asyncio.sleep(0)
        return self._coprocessor.encrypt(value, contract_address, user_address)

    def generate_keypair(self) -> KeyPair:
        private_key = secrets.token_bytes(32)
        public_key = hashlib.sha256(b"zamail-mock-reencrypt" + private_key).digest()
        return KeyPair(public_key="0x" + public_key.hex(), private_key="0x" + private_key.hex())

    async def decrypt(
        self,
        handles: Sequence[str],
        signature: "DecryptionSignature",
        contract_address: str,
        user_address: str,
    ) -> Dict[str, int]:
        self.decrypt_calls += 1
        await asyncio.sleep(0)
        if signature.user_address.lower() != user_address.lower():
            raise DecryptionFailedError("Decryption signature belongs to another account")

        typed_data = self.create_eip712(
            signature.public_key,
            signature.contract_addresses,
            signature.start_timestamp,
            signature.duration_days,
        )
        return self._coprocessor.user_decrypt(
            list(handles),
            contract_address,
            user_address,
            typed_data,
            signature.signature,
        )
