# zamail/errors.py
"""
ZaMail: Error Taxonomy

All errors raised by the coordinator and its collaborators derive from
ZaMailError so callers can catch the whole family at once.

    ZaMailError
    ├── WalletNotConnectedError    - no session / user declined connect
    ├── ChainMismatchError         - session changed mid-operation (never surfaced)
    ├── InstanceCreationError      - FHEVM instance could not be built
    ├── SignatureRejectedError     - user rejected the decryption signature
    ├── ContractNotDeployedError   - no MessageBoard on the current chain
    ├── TransactionRevertedError   - sendMessage failed on-chain
    ├── DecryptionFailedError      - decryption service refused or failed
    └── MessageValidationError     - bad recipient or message text
"""

from __future__ import annotations

from typing import Optional


class ZaMailError(Exception):
    """Base exception for ZaMail errors."""
    pass


class WalletNotConnectedError(ZaMailError):
    """Wallet not connected, or the user declined authorization."""
    pass


class ChainMismatchError(ZaMailError):
    """The wallet session changed while an operation was suspended."""

    def __init__(self, reason: str = "session changed"):
        self.reason = reason
        super().__init__(f"Stale operation context: {reason}")


class InstanceCreationError(ZaMailError):
    """FHEVM instance creation failed."""

    def __init__(self, message: str, chain_id: Optional[int] = None):
        self.chain_id = chain_id
        super().__init__(message)


class SignatureRejectedError(ZaMailError):
    """User rejected the signature request."""
    pass


class ContractNotDeployedError(ZaMailError):
    """MessageBoard contract is not deployed on the current chain."""

    def __init__(self, chain_id: Optional[int]):
        self.chain_id = chain_id
        super().__init__(f"MessageBoard is not deployed on chain {chain_id}")


class TransactionRevertedError(ZaMailError):
    """Transaction failed on-chain."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class DecryptionFailedError(ZaMailError):
    """Decryption of a ciphertext handle failed."""
    pass


class MessageValidationError(ZaMailError, ValueError):
    """Recipient or message text rejected before reaching the contract."""
    pass
