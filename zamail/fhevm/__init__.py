"""
ZaMail FHEVM: chain-bound encryption instances.

Modules:
    networks  - chain id -> FHEVM contract set (incl. local mock chains)
    instance  - FhevmInstance / factory interfaces, EIP-712 authorization
    mock      - MockCoprocessor + MockFhevmInstance for offline chains
    manager   - FheInstanceManager state machine
"""

from .networks import (
    NetworkConfig,
    NETWORKS,
    SEPOLIA,
    LOCAL_TEMPLATE,
    DEFAULT_MOCK_CHAINS,
    HARDHAT_CHAIN_ID,
    SEPOLIA_CHAIN_ID,
    is_mock_chain,
    resolve_network,
)

from .instance import (
    FhevmInstance,
    FhevmInstanceFactory,
    DefaultInstanceFactory,
    EncryptedInput,
    KeyPair,
    USER_DECRYPT_TYPES,
    DEFAULT_SIGNATURE_DURATION_DAYS,
    user_decrypt_eip712,
)

from .mock import (
    MockCoprocessor,
    MockFhevmInstance,
    InputProofError,
)

from .manager import (
    FheInstanceManager,
    FhevmState,
    FhevmStatus,
)

__all__ = [
    # === Networks ===
    "NetworkConfig",
    "NETWORKS",
    "SEPOLIA",
    "LOCAL_TEMPLATE",
    "DEFAULT_MOCK_CHAINS",
    "HARDHAT_CHAIN_ID",
    "SEPOLIA_CHAIN_ID",
    "is_mock_chain",
    "resolve_network",

    # === Instance ===
    "FhevmInstance",
    "FhevmInstanceFactory",
    "DefaultInstanceFactory",
    "EncryptedInput",
    "KeyPair",
    "USER_DECRYPT_TYPES",
    "DEFAULT_SIGNATURE_DURATION_DAYS",
    "user_decrypt_eip712",

    # === Mock ===
    "MockCoprocessor",
    "MockFhevmInstance",
    "InputProofError",

    # === Manager ===
    "FheInstanceManager",
    "FhevmState",
    "FhevmStatus",
]
