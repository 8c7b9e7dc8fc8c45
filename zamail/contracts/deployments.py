# zamail/contracts/deployments.py
"""
ZaMail Contracts: Deployment Table

MessageBoard addresses per chain id. The zero address marks a chain the
contract is known on but not deployed to; missing chains are likewise
undeployed.
"""

from __future__ import annotations

from typing import Optional, Dict

from web3 import Web3

from ..fhevm.networks import HARDHAT_CHAIN_ID, SEPOLIA_CHAIN_ID


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

MESSAGE_BOARD_ADDRESSES: Dict[int, str] = {
    HARDHAT_CHAIN_ID: "0x5FbDB2315678afecb367f032d93F642f64180aa3",
    SEPOLIA_CHAIN_ID: ZERO_ADDRESS,
}


def resolve_contract_address(
    chain_id: Optional[int],
    overrides: Optional[Dict[int, str]] = None,
) -> Optional[str]:
    """
    MessageBoard address for a chain.

    Returns:
        Checksummed address, or None if the chain has no deployment
    """
    if chain_id is None:
        return None
    address = (overrides or {}).get(chain_id) or MESSAGE_BOARD_ADDRESSES.get(chain_id)
    if not address or int(address, 16) == 0:
        return None
    return Web3.to_checksum_address(address)
