# zamail/adapters/bridge.py
"""
ZaMail Adapters: web3.py Bridge

Lets AsyncWeb3 talk to a wallet provider, the Python counterpart of
wrapping window.ethereum in a BrowserProvider. Read calls and
eth_sendTransaction are routed through the wallet, so transactions show
up as wallet prompts.

Usage:
    w3 = AsyncWeb3(Eip1193Web3Provider(provider))
    block = await w3.eth.block_number
"""

from __future__ import annotations

import itertools
from typing import Any

from web3.providers.async_base import AsyncBaseProvider
from web3.types import RPCEndpoint, RPCResponse

from .base import EthereumProvider, ProviderRpcError


class Eip1193Web3Provider(AsyncBaseProvider):
    """AsyncWeb3 provider that forwards JSON-RPC to an EIP-1193 provider."""

    def __init__(self, provider: EthereumProvider, **kwargs: Any):
        super().__init__(**kwargs)
        self._provider = provider
        self._ids = itertools.count()

    async def make_request(self, method: RPCEndpoint, params: Any) -> RPCResponse:
        request_id = next(self._ids)
        if not isinstance(params, dict):
            params = list(params or [])
        try:
            result = await self._provider.request(method, params)
        except ProviderRpcError as e:
            return {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": int(e.code), "message": str(e)},
            }
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def is_connected(self, show_traceback: bool = False) -> bool:
        try:
            await self._provider.request("eth_chainId")
        except Exception:
            if show_traceback:
                raise
            return False
        return True
