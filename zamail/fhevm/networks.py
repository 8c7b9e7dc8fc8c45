# zamail/fhevm/networks.py
"""
ZaMail FHEVM: Network Configuration

Static table of FHEVM deployments, resolved by chain id.

Chain ids listed in `mock_chains` are local development nodes (Hardhat
with the FHEVM mock plugin). They resolve against LOCAL_TEMPLATE instead
of live chain metadata, which is what makes the offline test chain mode
possible.

Chains:
    31337     - Hardhat (mock, default)
    11155111  - Sepolia (Zama relayer)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Dict

from ..errors import InstanceCreationError


# =============================================================================
# Constants
# =============================================================================

HARDHAT_CHAIN_ID = 31337
SEPOLIA_CHAIN_ID = 11155111

DEFAULT_MOCK_CHAINS: Dict[int, str] = {
    HARDHAT_CHAIN_ID: "http://localhost:8545",
}

GATEWAY_CHAIN_ID = 55815


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class NetworkConfig:
    """
    FHEVM contract set for one chain.

    Attributes:
        chain_id: Host chain id
        name: Human readable network name
        acl_contract: ACL contract address
        kms_contract: KMS verifier contract address
        input_verifier_contract: Input verifier contract address
        verifying_contract_decryption: EIP-712 verifying contract for user decryption
        verifying_contract_input_verification: EIP-712 verifying contract for inputs
        gateway_chain_id: Chain id used in the decryption EIP-712 domain
        relayer_url: Relayer endpoint (None for mock chains)
        rpc_url: Node RPC endpoint
        is_mock: True for local development chains
    """
    chain_id: int
    name: str
    acl_contract: str
    kms_contract: str
    input_verifier_contract: str
    verifying_contract_decryption: str
    verifying_contract_input_verification: str
    gateway_chain_id: int = GATEWAY_CHAIN_ID
    relayer_url: Optional[str] = None
    rpc_url: Optional[str] = None
    is_mock: bool = False


SEPOLIA = NetworkConfig(
    chain_id=SEPOLIA_CHAIN_ID,
    name="sepolia",
    acl_contract="0x687820221192C5B662b25367F70076A37bc79b6c",
    kms_contract="0x1364cBBf2cDF5032C47d8226a6f6FBD2AFCDacAC",
    input_verifier_contract="0xbc91f3daD1A5F19F8390c400196e58073B6a0BC4",
    verifying_contract_decryption="0xb6E160B1ff80D67Bfe90A85eE06Ce0A2613607D1",
    verifying_contract_input_verification="0x7048C39f048125eDa9d678AEbaDfB22F7900a29F",
    relayer_url="https://relayer.testnet.zama.cloud",
)

LOCAL_TEMPLATE = NetworkConfig(
    chain_id=HARDHAT_CHAIN_ID,
    name="hardhat",
    acl_contract="0x50157CFfD6bBFA2DECe204a89ec419c23ef5755D",
    kms_contract="0xCD3ab3bd6bcc0c0bf3E27912a92043e817B1cf69",
    input_verifier_contract="0x901F8942346f7AB3a01F6D7613119Bca447Bb030",
    verifying_contract_decryption="0x5ffdaAB0373E62E2ea2944776209aEf29E631A64",
    verifying_contract_input_verification="0x812b06e1CDCE800494b79fFE4f925A504a9A9810",
    rpc_url=DEFAULT_MOCK_CHAINS[HARDHAT_CHAIN_ID],
    is_mock=True,
)

NETWORKS: Dict[int, NetworkConfig] = {
    SEPOLIA_CHAIN_ID: SEPOLIA,
}


# =============================================================================
# Resolution
# =============================================================================

def is_mock_chain(chain_id: int, mock_chains: Optional[Dict[int, str]] = None) -> bool:
    """Check whether a chain id is served by a local mock node."""
    table = DEFAULT_MOCK_CHAINS if mock_chains is None else mock_chains
    return chain_id in table


def resolve_network(
    chain_id: int,
    mock_chains: Optional[Dict[int, str]] = None,
) -> NetworkConfig:
    """
    Resolve the FHEVM configuration for a chain.

    Args:
        chain_id: Host chain id
        mock_chains: Local test chains {chain_id: rpc_url}

    Returns:
        NetworkConfig

    Raises:
        InstanceCreationError: If the chain has no FHEVM deployment
    """
    table = DEFAULT_MOCK_CHAINS if mock_chains is None else mock_chains
    if chain_id in table:
        return replace(
            LOCAL_TEMPLATE,
            chain_id=chain_id,
            name=LOCAL_TEMPLATE.name if chain_id == HARDHAT_CHAIN_ID else f"local-{chain_id}",
            rpc_url=table[chain_id],
        )

    config = NETWORKS.get(chain_id)
    if config is None:
        raise InstanceCreationError(f"Unsupported chain id {chain_id}", chain_id)
    return config
