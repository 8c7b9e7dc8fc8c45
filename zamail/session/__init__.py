"""
ZaMail Session: wallet session tracking.

    WalletSession          - immutable snapshot (address, chain_id, signer, readonly_provider)
    WalletSessionProvider  - observer over an EIP-1193 provider
"""

from .provider import (
    WalletSession,
    WalletSessionProvider,
    SessionCallback,
    build_readonly_provider,
)

__all__ = [
    "WalletSession",
    "WalletSessionProvider",
    "SessionCallback",
    "build_readonly_provider",
]
