# zamail/fhevm/instance.py
"""
ZaMail FHEVM: Instance Interface

The FHEVM instance is the capability object that encrypts inputs for a
contract and decrypts ciphertext handles for a user. The math lives in an
external library; this module only fixes the boundary.

    FhevmInstance         - encrypt / decrypt / keypair / EIP-712 builder
    FhevmInstanceFactory  - builds an instance for a resolved network
    DefaultInstanceFactory- mock chains -> MockFhevmInstance,
                            other chains -> pluggable backend

User decryption authorization (EIP-712):
    domain:  name="Decryption", version="1",
             chainId=<gateway chain>, verifyingContract=<decryption verifier>
    primaryType: UserDecryptRequestVerification
        publicKey          bytes
        contractAddresses  address[]
        startTimestamp     uint256
        durationDays       uint256
        extraData          bytes
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Sequence, Callable, Awaitable, TYPE_CHECKING

from ..adapters import EthereumProvider, EIP712Domain, build_typed_data, WEB3_CLIENT_VERSION
from ..errors import InstanceCreationError
from .networks import NetworkConfig

if TYPE_CHECKING:
    from ..signatures.signature import DecryptionSignature
    from .mock import MockCoprocessor


# =============================================================================
# Constants
# =============================================================================

DEFAULT_SIGNATURE_DURATION_DAYS = 365

USER_DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"

USER_DECRYPT_TYPES: Dict[str, List[Dict[str, str]]] = {
    USER_DECRYPT_PRIMARY_TYPE: [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationDays", "type": "uint256"},
        {"name": "extraData", "type": "bytes"},
    ],
}


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class EncryptedInput:
    """Encrypted contract input: ciphertext handle plus its input proof."""
    handle: str       # bytes32 hex
    input_proof: str  # hex


@dataclass(frozen=True)
class KeyPair:
    """Ephemeral re-encryption key pair used for user decryption."""
    public_key: str
    private_key: str


def user_decrypt_eip712(
    config: NetworkConfig,
    public_key: str,
    contract_addresses: Sequence[str],
    start_timestamp: int,
    duration_days: int,
) -> Dict[str, Any]:
    """Build the EIP-712 document a user signs to authorize decryption."""
    domain = EIP712Domain(
        name="Decryption",
        version="1",
        chain_id=config.gateway_chain_id,
        verifying_contract=config.verifying_contract_decryption,
    )
    return build_typed_data(
        domain,
        USER_DECRYPT_TYPES,
        USER_DECRYPT_PRIMARY_TYPE,
        {
            "publicKey": public_key,
            "contractAddresses": list(contract_addresses),
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
            "extraData": "0x00",
        },
    )


# =============================================================================
# Instance Interface
# =============================================================================

class FhevmInstance(ABC):
    """Chain-bound encryption/decryption capability."""

    def __init__(self, config: NetworkConfig):
        self._config = config

    @property
    def config(self) -> NetworkConfig:
        return self._config

    @property
    def chain_id(self) -> int:
        return self._config.chain_id

    @property
    def signature_duration_days(self) -> int:
        """Validity window of decryption signatures issued for this instance."""
        return DEFAULT_SIGNATURE_DURATION_DAYS

    @abstractmethod
    async def encrypt(self, value: int, contract_address: str, user_address: str) -> EncryptedInput:
        """
        Encrypt a 64-bit value as an input for `contract_address`, bound to
        `user_address`.
        """
        pass

    @abstractmethod
    def generate_keypair(self) -> KeyPair:
        """Generate an ephemeral re-encryption key pair."""
        pass

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Any]:
        """Build the user decryption EIP-712 document for this network."""
        return user_decrypt_eip712(
            self._config, public_key, contract_addresses, start_timestamp, duration_days
        )

    @abstractmethod
    async def decrypt(
        self,
        handles: Sequence[str],
        signature: "DecryptionSignature",
        contract_address: str,
        user_address: str,
    ) -> Dict[str, int]:
        """
        Decrypt ciphertext handles the user is allowed to read.

        Returns:
            {handle: clear value}

        Raises:
            DecryptionFailedError: If the service refuses or fails
        """
        pass


# =============================================================================
# Factories
# =============================================================================

class FhevmInstanceFactory(ABC):
    """Builds an FHEVM instance for a resolved network."""

    @abstractmethod
    async def create(self, provider: EthereumProvider, config: NetworkConfig) -> FhevmInstance:
        pass


InstanceBackend = Callable[[EthereumProvider, NetworkConfig], Awaitable[FhevmInstance]]


class DefaultInstanceFactory(FhevmInstanceFactory):
    """
    Mock chains get a MockFhevmInstance over the local coprocessor; live
    chains are delegated to `backend` (the relayer-backed FHE library).
    """

    def __init__(
        self,
        coprocessor: Optional["MockCoprocessor"] = None,
        backend: Optional[InstanceBackend] = None,
    ):
        self._coprocessor = coprocessor
        self._backend = backend

    async def create(self, provider: EthereumProvider, config: NetworkConfig) -> FhevmInstance:
        if config.is_mock:
            await self._check_hardhat_node(provider, config)
            if self._coprocessor is None:
                raise InstanceCreationError(
                    f"No local coprocessor for mock chain {config.chain_id}", config.chain_id
                )
            if self._coprocessor.chain_id != config.chain_id:
                raise InstanceCreationError(
                    f"Coprocessor serves chain {self._coprocessor.chain_id}, not {config.chain_id}",
                    config.chain_id,
                )
            from .mock import MockFhevmInstance
            return MockFhevmInstance(config, self._coprocessor)

        if self._backend is None:
            raise InstanceCreationError(
                f"No FHEVM backend configured for {config.name} ({config.chain_id})",
                config.chain_id,
            )
        return await self._backend(provider, config)

    @staticmethod
    async def _check_hardhat_node(provider: EthereumProvider, config: NetworkConfig) -> None:
        """The node behind a mock chain must identify as Hardhat."""
        try:
            version = await provider.request(WEB3_CLIENT_VERSION)
        except Exception as e:
            raise InstanceCreationError(
                f"Unable to reach local node {config.rpc_url}: {e}", config.chain_id
            ) from e
        if "hardhat" not in str(version).lower():
            raise InstanceCreationError(
                f"Chain {config.chain_id} is not a Hardhat node ({version})", config.chain_id
            )
