"""
ZaMail Contracts: MessageBoard access.

    ContractGateway      - read/write interface
    Web3ContractGateway  - web3.py implementation
    MockMessageBoard     - in-process contract for the local devnet
    MockContractGateway  - gateway over a MockMessageBoard
"""

from .gateway import (
    ContractGateway,
    GatewayFactory,
    Message,
    TransactionReceipt,
)

from .abi import MESSAGE_BOARD_ABI

from .deployments import (
    MESSAGE_BOARD_ADDRESSES,
    ZERO_ADDRESS,
    resolve_contract_address,
)

from .web3_gateway import (
    Web3ContractGateway,
    web3_gateway_factory,
)

from .mock import (
    MockMessageBoard,
    MockContractGateway,
    mock_gateway_factory,
)

__all__ = [
    # === Interface ===
    "ContractGateway",
    "GatewayFactory",
    "Message",
    "TransactionReceipt",
    "MESSAGE_BOARD_ABI",

    # === Deployments ===
    "MESSAGE_BOARD_ADDRESSES",
    "ZERO_ADDRESS",
    "resolve_contract_address",

    # === Implementations ===
    "Web3ContractGateway",
    "web3_gateway_factory",
    "MockMessageBoard",
    "MockContractGateway",
    "mock_gateway_factory",
]
