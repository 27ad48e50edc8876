"""
chainops.rpc
------------

Async HTTP JSON-RPC client used by the EVM ledger adapter.

    from chainops.rpc import RpcClient
    rpc = RpcClient(url="http://localhost:8545")
"""

from __future__ import annotations

from .http import RpcClient

__all__ = ["RpcClient"]
