from __future__ import annotations

"""
chainops.tx.evm
===============

`EvmLedger` talks to an Ethereum-style JSON-RPC node whose accounts are
unlocked on the node (development networks, hardhat/anvil style). It plays
all three collaborator roles the coordinator needs:

- FeeNonceOracle : eth_gasPrice, eth_getTransactionCount(addr, pending|latest)
- NetworkClient  : eth_sendTransaction for deploys and calls, receipt polling
- AccountSource  : eth_accounts

Call data
---------
- deploy : creation bytecode || abi.encode(constructor args)
- invoke : selector(signature) || abi.encode(args)

Nonce, gasPrice and (optionally) gas come from the request overrides the
coordinator fills in.

Usage
-----
    async with RpcClient.from_config(cfg) as rpc:
        ledger = EvmLedger.from_config(rpc, cfg)
        fee = await ledger.current_fee_per_unit()
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from eth_abi import encode as abi_encode

from ..errors import JsonRpcCode, RpcError, TxError
from ..utils.bytes import ensure_bytes, parse_quantity, to_hex, to_quantity
from .types import Account, ActionRequest, EntryPoint, PendingTx, Receipt

log = logging.getLogger(__name__)


def _encode_args(entry: EntryPoint, args: List[Any]) -> bytes:
    if len(args) != len(entry.arg_types):
        raise TxError(f"{entry.signature} expects {len(entry.arg_types)} argument(s), got {len(args)}")
    if not entry.arg_types:
        return b""
    return abi_encode(list(entry.arg_types), list(args))


def parse_receipt(raw: Dict[str, Any]) -> Receipt:
    """Normalize an eth_getTransactionReceipt payload into a Receipt."""
    if not isinstance(raw, dict):
        raise TxError(f"unexpected receipt payload: {type(raw)!r}")
    return Receipt(
        tx_hash=raw.get("transactionHash", ""),
        block_number=parse_quantity(raw.get("blockNumber")),
        status=parse_quantity(raw.get("status")),
        contract_address=raw.get("contractAddress"),
        gas_used=parse_quantity(raw.get("gasUsed")),
        raw=raw,
    )


class EvmLedger:
    """JSON-RPC backed fee/nonce oracle, network client and account source."""

    def __init__(
        self,
        rpc: Any,
        *,
        poll_interval_s: float = 1.0,
        max_poll_interval_s: float = 5.0,
        backoff: float = 1.25,
    ) -> None:
        self._rpc = rpc
        self._poll_interval_s = float(poll_interval_s)
        self._max_poll_interval_s = max(float(max_poll_interval_s), self._poll_interval_s)
        self._backoff = float(backoff)

    @classmethod
    def from_config(cls, rpc: Any, cfg: Any) -> "EvmLedger":
        return cls(rpc, poll_interval_s=cfg.poll_interval_s)

    # --- AccountSource --------------------------------------------------

    async def accounts(self) -> List[str]:
        res = await self._rpc.request("eth_accounts")
        if not isinstance(res, list):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="eth_accounts returned a non-list", data=res, method="eth_accounts")
        return [str(a) for a in res]

    # --- FeeNonceOracle -------------------------------------------------

    async def current_fee_per_unit(self) -> int:
        return parse_quantity(await self._rpc.request("eth_gasPrice")) or 0

    async def pending_sequence_number(self, address: str) -> int:
        return await self._tx_count(address, "pending")

    async def confirmed_sequence_number(self, address: str) -> int:
        return await self._tx_count(address, "latest")

    async def _tx_count(self, address: str, tag: str) -> int:
        return parse_quantity(await self._rpc.request("eth_getTransactionCount", [address, tag])) or 0

    # --- NetworkClient --------------------------------------------------

    async def deploy(self, entry: EntryPoint, request: ActionRequest, account: Account) -> PendingTx:
        if entry.bytecode is None:
            raise TxError(f"deploy of {entry.name} requires creation bytecode")
        data = ensure_bytes(entry.bytecode) + _encode_args(entry, request.args)
        tx = self._base_tx(request, account)
        tx["data"] = to_hex(data)
        return await self._send(tx, request, to=None, selector=None)

    async def invoke(self, entry: EntryPoint, request: ActionRequest, account: Account) -> PendingTx:
        if not entry.address:
            raise TxError(f"call to {entry.signature} requires a target address")
        data = entry.selector + _encode_args(entry, request.args)
        tx = self._base_tx(request, account)
        tx["to"] = entry.address
        tx["data"] = to_hex(data)
        return await self._send(tx, request, to=entry.address, selector=entry.selector_hex)

    async def wait(self, pending: PendingTx) -> Receipt:
        """
        Poll eth_getTransactionReceipt until the receipt exists. No deadline:
        callers bound the wait themselves (the coordinator cancels it on its deadline).
        """
        interval = self._poll_interval_s
        while True:
            raw = await self._rpc.request("eth_getTransactionReceipt", [pending.tx_hash])
            if raw:
                receipt = parse_receipt(raw)
                if not receipt.succeeded:
                    raise TxError("transaction reverted", tx_hash=pending.tx_hash, code=receipt.status, receipt=raw)
                return receipt
            await asyncio.sleep(interval)
            interval = min(interval * self._backoff, self._max_poll_interval_s)

    # --- internals ------------------------------------------------------

    @staticmethod
    def _base_tx(request: ActionRequest, account: Account) -> Dict[str, Any]:
        ov = request.overrides
        if ov.nonce is None or ov.fee_per_unit is None:
            raise TxError("nonce and fee_per_unit must be resolved before sending")
        tx: Dict[str, Any] = {
            "from": account.address,
            "nonce": to_quantity(ov.nonce),
            "gasPrice": to_quantity(ov.fee_per_unit),
        }
        if ov.gas_limit is not None:
            tx["gas"] = to_quantity(ov.gas_limit)
        return tx

    async def _send(
        self,
        tx: Dict[str, Any],
        request: ActionRequest,
        *,
        to: Optional[str],
        selector: Optional[str],
    ) -> PendingTx:
        tx_hash = await self._rpc.request("eth_sendTransaction", [tx])
        if not isinstance(tx_hash, str):
            raise TxError(f"unexpected eth_sendTransaction result: {type(tx_hash)!r}")
        log.debug("eth_sendTransaction accepted", extra={"tx_hash": tx_hash, "nonce": tx["nonce"]})
        return PendingTx(
            tx_hash=tx_hash,
            nonce=int(request.overrides.nonce or 0),
            fee_per_unit=int(request.overrides.fee_per_unit or 0),
            selector=selector,
            to=to,
        )


__all__ = ["EvmLedger", "parse_receipt"]
