# zamail/__init__.py
"""
ZaMail: Encrypted Message Board Client

Client-side coordinator of an FHEVM message board: send short messages
whose content is homomorphically encrypted, and decrypt the ones
addressed to you with a wallet-signed authorization.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │  zamail                                                 │
    │  ├── adapters/      # EIP-1193 provider, signers, bridge│
    │  ├── session/       # WalletSessionProvider             │
    │  ├── fhevm/         # networks, instance, mock, manager │
    │  ├── signatures/    # DecryptionSignatureStore          │
    │  ├── contracts/     # MessageBoard gateways             │
    │  ├── coordinator.py # MessageBoardCoordinator           │
    │  ├── client.py      # component wiring                  │
    │  ├── config.py      # ZaMailConfig (.env)               │
    │  └── devnet.py      # offline local chain               │
    └─────────────────────────────────────────────────────────┘

Quick start (offline):
    python -m zamail --text hi
"""

__version__ = "0.1.0"

# =============================================================================
# Errors
# =============================================================================

from .errors import (
    ZaMailError,
    WalletNotConnectedError,
    ChainMismatchError,
    InstanceCreationError,
    SignatureRejectedError,
    ContractNotDeployedError,
    TransactionRevertedError,
    DecryptionFailedError,
    MessageValidationError,
)

# =============================================================================
# Components
# =============================================================================

from .adapters import (
    EthereumProvider,
    Signer,
    MockEthereumProvider,
    ProviderRpcError,
)

from .session import WalletSession, WalletSessionProvider

from .fhevm import (
    FheInstanceManager,
    FhevmState,
    FhevmStatus,
    DefaultInstanceFactory,
    NETWORKS,
    DEFAULT_MOCK_CHAINS,
)

from .signatures import (
    DecryptionSignature,
    DecryptionSignatureStore,
    InMemoryStorage,
    JsonFileStorage,
)

from .contracts import (
    ContractGateway,
    Message,
    MESSAGE_BOARD_ADDRESSES,
    web3_gateway_factory,
)

from .codec import encode_text, decode_text, MAX_MESSAGE_LENGTH

from .coordinator import (
    MessageBoardCoordinator,
    CoordinatorState,
    CoordinatorPhase,
    ClearMessage,
)

from .config import ZaMailConfig, configure_logging
from .client import ZaMailClient, create_client
from .devnet import LocalDevnet


def status() -> dict:
    """
    Summary of the supported networks.

    Example:
        >>> import zamail
        >>> zamail.status()
        {
            'version': '0.1.0',
            'fhevm_networks': [11155111],
            'mock_chains': [31337],
            'message_board': {31337: '0x5FbDB2315678afecb367f032d93F642f64180aa3'},
        }
    """
    return {
        'version': __version__,
        'fhevm_networks': sorted(NETWORKS),
        'mock_chains': sorted(DEFAULT_MOCK_CHAINS),
        'message_board': {
            chain_id: address
            for chain_id, address in MESSAGE_BOARD_ADDRESSES.items()
            if int(address, 16) != 0
        },
    }


__all__ = [
    "__version__",
    "status",

    # === Errors ===
    "ZaMailError",
    "WalletNotConnectedError",
    "ChainMismatchError",
    "InstanceCreationError",
    "SignatureRejectedError",
    "ContractNotDeployedError",
    "TransactionRevertedError",
    "DecryptionFailedError",
    "MessageValidationError",

    # === Components ===
    "EthereumProvider",
    "Signer",
    "MockEthereumProvider",
    "ProviderRpcError",
    "WalletSession",
    "WalletSessionProvider",
    "FheInstanceManager",
    "FhevmState",
    "FhevmStatus",
    "DefaultInstanceFactory",
    "NETWORKS",
    "DEFAULT_MOCK_CHAINS",
    "DecryptionSignature",
    "DecryptionSignatureStore",
    "InMemoryStorage",
    "JsonFileStorage",
    "ContractGateway",
    "Message",
    "MESSAGE_BOARD_ADDRESSES",
    "web3_gateway_factory",
    "encode_text",
    "decode_text",
    "MAX_MESSAGE_LENGTH",
    "MessageBoardCoordinator",
    "CoordinatorState",
    "CoordinatorPhase",
    "ClearMessage",

    # === Wiring ===
    "ZaMailConfig",
    "configure_logging",
    "ZaMailClient",
    "create_client",
    "LocalDevnet",
]
