# zamail/signatures/signature.py
"""
ZaMail Signatures: Decryption Signature

A user-signed EIP-712 authorization allowing the holder of an ephemeral
key pair to decrypt ciphertexts of the listed contracts for a bounded
time window. Never mutated; an expired or mismatching signature is
replaced by a fresh one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple


SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DecryptionSignature:
    """
    Signed user decryption authorization.

    Attributes:
        public_key: Ephemeral re-encryption public key (hex)
        private_key: Ephemeral re-encryption private key (hex)
        signature: 65-byte EIP-712 signature of the user
        start_timestamp: Issue time (unix seconds)
        duration_days: Validity window in days
        contract_addresses: Contracts the authorization covers
        user_address: Account that signed
        chain_id: Chain the authorization was issued on
    """
    public_key: str
    private_key: str = field(repr=False)
    signature: bytes = field(repr=False)
    start_timestamp: int
    duration_days: int
    contract_addresses: Tuple[str, ...]
    user_address: str
    chain_id: int

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_valid(self, now: float) -> bool:
        """True while `now` is inside the validity window."""
        return self.start_timestamp <= now < self.expires_at

    def matches(self, chain_id: int, contract_address: str, user_address: str) -> bool:
        """True if the signature was issued for this (chain, contract, user)."""
        if chain_id != self.chain_id:
            return False
        if user_address.lower() != self.user_address.lower():
            return False
        covered = {a.lower() for a in self.contract_addresses}
        return contract_address.lower() in covered

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publicKey": self.public_key,
            "privateKey": self.private_key,
            "signature": "0x" + self.signature.hex(),
            "startTimestamp": self.start_timestamp,
            "durationDays": self.duration_days,
            "contractAddresses": list(self.contract_addresses),
            "userAddress": self.user_address,
            "chainId": self.chain_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecryptionSignature":
        """
        Raises:
            KeyError, TypeError, ValueError: On malformed data
        """
        signature = data["signature"]
        if not isinstance(signature, str):
            raise ValueError(f"signature must be a hex string, got {type(signature).__name__}")
        if signature.startswith("0x"):
            signature = signature[2:]
        return cls(
            public_key=str(data["publicKey"]),
            private_key=str(data["privateKey"]),
            signature=bytes.fromhex(signature),
            start_timestamp=int(data["startTimestamp"]),
            duration_days=int(data["durationDays"]),
            contract_addresses=tuple(str(a) for a in data["contractAddresses"]),
            user_address=str(data["userAddress"]),
            chain_id=int(data["chainId"]),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "DecryptionSignature":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Decryption signature JSON must be an object")
        return cls.from_dict(data)


def storage_key(chain_id: int, contract_address: str, user_address: str) -> str:
    """Persisted-storage key of a signature."""
    return f"zamail:decrypt-sig:{chain_id}:{contract_address.lower()}:{user_address.lower()}"


def parse_signature(value: Optional[str]) -> Optional[DecryptionSignature]:
    if value is None:
        return None
    return DecryptionSignature.from_json(value)
