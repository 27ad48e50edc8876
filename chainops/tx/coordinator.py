"""
chainops.tx.coordinator
=======================

Resilient submission of contract deployments and state-changing calls.

Given an `Action` (Deploy or Invoke) and an `ActionRequest`, the coordinator:

- resolves a nonce (caller override, else the account's *pending* count),
- resolves a fee-per-unit (caller override, else a fresh quote),
- submits through the network client and waits for confirmation,
- for invokes, escalates the fee and resubmits at the same nonce whenever the
  confirmation wait exceeds `confirmation_timeout_s` (no bound on escalations),
- on any submission failure, cools down for `cooldown_s`, re-derives the nonce
  from the confirmed/pending counts and tries again, up to `max_attempts`
  outer attempts in total,
- raises `SubmissionExhausted` once every outer attempt has failed.

Deploys are submitted once per outer attempt and awaited without a deadline;
they never take the fee escalation path.

Usage
-----
    from chainops.rpc import RpcClient
    from chainops.tx import Coordinator, EntryPoint, EvmLedger, Invoke, ActionRequest

    async with RpcClient(cfg.rpc_url) as rpc:
        ledger = EvmLedger(rpc, poll_interval_s=cfg.poll_interval_s)
        coord = await Coordinator.connect(ledger, cfg)
        entry = EntryPoint("finalizeGame", ("bytes",), address=game_address)
        pending = await coord.submit(Invoke(entry), ActionRequest(args=[report]))

Concurrency
-----------
One `submit` call runs one retry sequence at a time. The nonce recovery after
a failure reads oracle counts instead of holding a claim on the nonce, so two
concurrent submissions from the same account can derive the same nonce.
Serialize submissions per account if that matters.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..config import ChainOpsConfig
from ..errors import (ConfirmationTimeout, SubmissionExhausted,
                      TransientNetworkFailure, TxError)
from ..logging import trace_scope
from .interfaces import AccountSource, FeeNonceOracle, NetworkClient
from .types import (Account, Action, ActionRequest, AttemptOutcome, Deploy,
                    DeployedContract, EntryPoint, Invoke, Overrides,
                    PendingTx, Receipt, SubmissionAttempt)

log = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]
SubmitResult = Union[DeployedContract, PendingTx]


class Coordinator:
    """
    Submits actions for a single signing account.

    Parameters
    ----------
    network : NetworkClient used for deploy/invoke/wait.
    oracle : FeeNonceOracle used for fee quotes and sequence numbers.
    account : the signer; construct one coordinator per account.
    config : timings and attempt bounds (defaults to ChainOpsConfig()).
    sleep : awaitable used for the post-failure cool-down.
    """

    def __init__(
        self,
        network: NetworkClient,
        oracle: FeeNonceOracle,
        account: Account,
        config: Optional[ChainOpsConfig] = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._network = network
        self._oracle = oracle
        self._account = account
        self._config = config or ChainOpsConfig()
        self._sleep = sleep

    @classmethod
    async def connect(
        cls,
        ledger: Any,
        config: Optional[ChainOpsConfig] = None,
        *,
        account_index: int = 0,
        sleep: SleepFn = asyncio.sleep,
    ) -> "Coordinator":
        """
        Resolve the signer from the node's account list once and bind it to a
        new coordinator. `ledger` must implement NetworkClient, FeeNonceOracle
        and AccountSource (EvmLedger does).
        """
        if not isinstance(ledger, AccountSource):
            raise TypeError("ledger must expose accounts() to resolve the signer")
        addresses = await ledger.accounts()
        if len(addresses) <= account_index:
            raise TxError(f"node exposes {len(addresses)} account(s); index {account_index} unavailable")
        account = Account(address=addresses[account_index])
        log.info("signer resolved", extra={"address": account.address})
        return cls(ledger, ledger, account, config, sleep=sleep)

    @property
    def account(self) -> Account:
        return self._account

    @property
    def config(self) -> ChainOpsConfig:
        return self._config

    # ------------------------------------------------------------------ public API

    async def submit(self, action: Action, request: Optional[ActionRequest] = None) -> SubmitResult:
        """
        Submit `action` and return a DeployedContract (deploys) or the confirmed
        PendingTx with its receipt attached (invokes).

        The caller's `request` is left untouched: resolved nonce, fee and gas
        limit go into a per-call copy of its overrides, so the same request can
        be submitted again and gets fresh values. The values actually used are
        on the returned PendingTx / receipt and on the attempt records.

        Raises SubmissionExhausted when every outer attempt fails; its
        `last_error` is a TransientNetworkFailure chained from the cause.
        """
        if not isinstance(action, (Deploy, Invoke)):
            raise TypeError(f"unsupported action: {action!r}")
        caller = request.overrides if request is not None else Overrides()
        overrides = replace(caller)
        if overrides.gas_limit is None and self._config.gas_limit is not None:
            overrides.gas_limit = self._config.gas_limit
        request = ActionRequest(args=list(request.args) if request is not None else [], overrides=overrides)

        attempts: List[SubmissionAttempt] = []
        last_error: Optional[TransientNetworkFailure] = None
        nonce = caller.nonce
        fee_floor = 0

        with trace_scope(account=self._account.address, action=_describe(action)):
            for attempt_no in range(1, self._config.max_attempts + 1):
                try:
                    if nonce is None:
                        nonce = await self._oracle.pending_sequence_number(self._account.address)
                    overrides.nonce = nonce

                    fee = caller.fee_per_unit
                    if fee is None:
                        fee = await self._oracle.current_fee_per_unit()
                    overrides.fee_per_unit = max(int(fee), fee_floor)

                    match action:
                        case Deploy(entry=entry):
                            return await self._deploy(entry, request, attempt_no, attempts)
                        case Invoke(entry=entry):
                            return await self._invoke(entry, request, attempt_no, attempts)
                except Exception as exc:
                    fee_floor = max(fee_floor, overrides.fee_per_unit or 0)
                    _mark_rejected(attempts, attempt_no, nonce, overrides.fee_per_unit, exc)
                    failure = TransientNetworkFailure(str(exc), attempt=attempt_no, nonce=nonce)
                    failure.__cause__ = exc
                    last_error = failure
                    log.warning(
                        "submission failed",
                        extra={
                            "attempt": attempt_no,
                            "max_attempts": self._config.max_attempts,
                            "nonce": nonce,
                            "error": repr(exc),
                        },
                    )
                    if attempt_no >= self._config.max_attempts:
                        break
                    log.info("cooling down before retry", extra={"cooldown_s": self._config.cooldown_s})
                    await self._sleep(self._config.cooldown_s)
                    nonce = await self._recover_nonce(failure)

        log.error("submission exhausted", extra={"attempts": len(attempts), "error": repr(last_error)})
        raise SubmissionExhausted(attempts=tuple(attempts), last_error=last_error) from last_error

    async def deploy(self, entry: EntryPoint, *args: Any, **overrides: Any) -> DeployedContract:
        """Shorthand for submit(Deploy(entry), ActionRequest(list(args), Overrides(**overrides)))."""
        result = await self.submit(Deploy(entry), ActionRequest(list(args), Overrides(**overrides)))
        assert isinstance(result, DeployedContract)
        return result

    async def invoke(self, entry: EntryPoint, *args: Any, **overrides: Any) -> PendingTx:
        """Shorthand for submit(Invoke(entry), ActionRequest(list(args), Overrides(**overrides)))."""
        result = await self.submit(Invoke(entry), ActionRequest(list(args), Overrides(**overrides)))
        assert isinstance(result, PendingTx)
        return result

    # ------------------------------------------------------------------ branches

    async def _deploy(
        self,
        entry: EntryPoint,
        request: ActionRequest,
        attempt_no: int,
        attempts: List[SubmissionAttempt],
    ) -> DeployedContract:
        record = SubmissionAttempt(
            attempt=attempt_no,
            nonce=request.overrides.nonce,
            fee_per_unit=request.overrides.fee_per_unit,
        )
        attempts.append(record)

        log.info(
            "deploying contract",
            extra={
                "contract": entry.name,
                "nonce": record.nonce,
                "fee_per_unit": record.fee_per_unit,
            },
        )
        pending = await self._network.deploy(entry, request, self._account)
        record.pending = pending
        log.info("deploy broadcast", extra={"contract": entry.name, "tx_hash": pending.tx_hash})

        receipt = _require_success(await self._network.wait(pending), pending)
        pending.receipt = receipt
        record.outcome = AttemptOutcome.CONFIRMED
        log.info(
            "contract deployed",
            extra={"contract": entry.name, "address": receipt.contract_address, "tx_hash": receipt.tx_hash},
        )
        return DeployedContract(address=receipt.contract_address, receipt=receipt)

    async def _invoke(
        self,
        entry: EntryPoint,
        request: ActionRequest,
        attempt_no: int,
        attempts: List[SubmissionAttempt],
    ) -> PendingTx:
        timeout_s = self._config.confirmation_timeout_s
        escalation = 0
        while True:
            record = SubmissionAttempt(
                attempt=attempt_no,
                nonce=request.overrides.nonce,
                fee_per_unit=request.overrides.fee_per_unit,
            )
            attempts.append(record)

            log.info(
                "sending transaction",
                extra={
                    "selector": entry.selector_hex,
                    "to": entry.address,
                    "nonce": record.nonce,
                    "fee_per_unit": record.fee_per_unit,
                    "escalation": escalation,
                },
            )
            pending = await self._network.invoke(entry, request, self._account)
            record.pending = pending
            log.info("transaction broadcast", extra={"tx_hash": pending.tx_hash, "escalation": escalation})

            waiter = asyncio.ensure_future(self._network.wait(pending))
            try:
                await asyncio.wait({waiter}, timeout=timeout_s)
            finally:
                if not waiter.done():
                    await _cancel(waiter)

            if waiter.cancelled():
                # Deadline passed; errors raised by wait() itself fail the attempt instead.
                record.outcome = AttemptOutcome.TIMED_OUT
                timeout = ConfirmationTimeout(tx_hash=pending.tx_hash, timeout_s=timeout_s)
                record.error = str(timeout)
                fresh = await self._oracle.current_fee_per_unit()
                request.overrides.fee_per_unit = self._escalate(record.fee_per_unit or 0, fresh)
                escalation += 1
                log.warning(
                    "confirmation timed out; resubmitting with a higher fee",
                    extra={
                        "tx_hash": timeout.tx_hash,
                        "timeout_s": timeout.timeout_s,
                        "nonce": record.nonce,
                        "previous_fee": record.fee_per_unit,
                        "fee_per_unit": request.overrides.fee_per_unit,
                        "escalation": escalation,
                    },
                )
                continue

            receipt = waiter.result()
            pending.receipt = _require_success(receipt, pending)
            record.outcome = AttemptOutcome.CONFIRMED
            log.info(
                "transaction confirmed",
                extra={"tx_hash": receipt.tx_hash, "block_number": receipt.block_number},
            )
            return pending

    # ------------------------------------------------------------------ helpers

    def _escalate(self, previous: int, fresh: int) -> int:
        """Never below the previous fee; at least `fee_bump_percent` above it when set."""
        nxt = max(int(fresh), int(previous))
        bump = self._config.fee_bump_percent
        if bump > 0:
            nxt = max(nxt, previous + max(1, previous * bump // 100))
        return nxt

    async def _recover_nonce(self, failure: TransientNetworkFailure) -> Optional[int]:
        """
        Re-derive the nonce after a failed attempt. With queued-but-unconfirmed
        transactions (pending > confirmed) the confirmed count is reused so the
        stuck transaction gets replaced; otherwise the pending count is used.
        Returns None when the oracle cannot be read, so the next attempt
        queries the pending count again.
        """
        address = self._account.address
        try:
            pending = await self._oracle.pending_sequence_number(address)
            confirmed = await self._oracle.confirmed_sequence_number(address)
        except Exception as exc:
            log.warning("nonce recovery failed", extra={"error": repr(exc), "attempt": failure.attempt})
            return None
        nonce = confirmed if pending - confirmed > 0 else pending
        log.info(
            "nonce recovered",
            extra={"pending": pending, "confirmed": confirmed, "nonce": nonce, "previous_nonce": failure.nonce},
        )
        return nonce


async def _cancel(task: "asyncio.Future[Any]") -> None:
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled():
        # finished before the cancel landed; mark any exception as retrieved
        task.exception()


def _describe(action: Action) -> str:
    match action:
        case Deploy(entry=entry):
            return f"deploy:{entry.name}"
        case Invoke(entry=entry):
            return f"invoke:{entry.signature}"
    return type(action).__name__


def _require_success(receipt: Receipt, pending: PendingTx) -> Receipt:
    if not receipt.succeeded:
        raise TxError(
            "transaction reverted",
            tx_hash=pending.tx_hash,
            code=receipt.status,
            receipt=receipt.raw,
        )
    return receipt


def _mark_rejected(
    attempts: List[SubmissionAttempt],
    attempt_no: int,
    nonce: Optional[int],
    fee: Optional[int],
    exc: BaseException,
) -> None:
    # The failure belongs to the newest record of this attempt, if one was opened.
    if attempts and attempts[-1].attempt == attempt_no and attempts[-1].outcome is None:
        record = attempts[-1]
    else:
        record = SubmissionAttempt(attempt=attempt_no, nonce=nonce, fee_per_unit=fee)
        attempts.append(record)
    record.outcome = AttemptOutcome.REJECTED
    record.error = repr(exc)


__all__ = ["Coordinator", "SubmitResult"]
