"""
ZaMail Signatures: user decryption authorizations.

    DecryptionSignature       - signed EIP-712 authorization (immutable)
    DecryptionSignatureStore  - memory + storage cache, one prompt per key
    StringStorage             - localStorage-like backends
"""

from .signature import (
    DecryptionSignature,
    storage_key,
)

from .storage import (
    StringStorage,
    InMemoryStorage,
    JsonFileStorage,
)

from .store import DecryptionSignatureStore

__all__ = [
    "DecryptionSignature",
    "storage_key",
    "StringStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "DecryptionSignatureStore",
]
