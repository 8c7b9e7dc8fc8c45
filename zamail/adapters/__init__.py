"""
ZaMail Adapters: Wallet Integration Layer

Adapters:
    EthereumProvider     - EIP-1193 provider interface
    MockEthereumProvider - In-process MetaMask stand-in for tests and the devnet
    Eip1193Signer        - Signatures prompted through the wallet
    Eip1193Web3Provider  - AsyncWeb3 provider routed through the wallet
"""

from .base import (
    EthereumProvider,
    Signer,
    WalletEvent,
    ProviderErrorCode,
    ProviderRpcError,
    EIP712Domain,
    build_typed_data,
    is_user_rejection,
)

from .metamask import (
    Eip1193Signer,
    MockEthereumProvider,
    ETH_REQUEST_ACCOUNTS,
    ETH_ACCOUNTS,
    ETH_CHAIN_ID,
    ETH_SIGN_TYPED_DATA,
    WALLET_SWITCH_CHAIN,
    WEB3_CLIENT_VERSION,
    HARDHAT_CLIENT_VERSION,
)

from .bridge import Eip1193Web3Provider

__all__ = [
    # === Base ===
    "EthereumProvider",
    "Signer",
    "WalletEvent",
    "ProviderErrorCode",
    "ProviderRpcError",
    "EIP712Domain",
    "build_typed_data",
    "is_user_rejection",

    # === MetaMask ===
    "Eip1193Signer",
    "MockEthereumProvider",
    "ETH_REQUEST_ACCOUNTS",
    "ETH_ACCOUNTS",
    "ETH_CHAIN_ID",
    "ETH_SIGN_TYPED_DATA",
    "WALLET_SWITCH_CHAIN",
    "WEB3_CLIENT_VERSION",
    "HARDHAT_CLIENT_VERSION",

    # === Bridge ===
    "Eip1193Web3Provider",
]
