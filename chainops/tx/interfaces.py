"""
Collaborator protocols consumed by the submission coordinator.

The coordinator never talks to a node directly; it goes through a fee/nonce
oracle and a network client. `chainops.tx.evm.EvmLedger` implements all of
them over JSON-RPC; tests use in-memory fakes.
"""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from .types import Account, ActionRequest, EntryPoint, PendingTx, Receipt


@runtime_checkable
class FeeNonceOracle(Protocol):
    async def current_fee_per_unit(self) -> int: ...

    async def pending_sequence_number(self, address: str) -> int: ...

    async def confirmed_sequence_number(self, address: str) -> int: ...


@runtime_checkable
class NetworkClient(Protocol):
    async def deploy(self, entry: EntryPoint, request: ActionRequest, account: Account) -> PendingTx: ...

    async def invoke(self, entry: EntryPoint, request: ActionRequest, account: Account) -> PendingTx: ...

    async def wait(self, pending: PendingTx) -> Receipt:
        """Resolve once `pending` is confirmed. May never return for a dropped tx."""
        ...


@runtime_checkable
class AccountSource(Protocol):
    async def accounts(self) -> List[str]: ...


__all__ = ["FeeNonceOracle", "NetworkClient", "AccountSource"]
