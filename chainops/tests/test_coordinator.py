from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, List, Optional

import pytest

from chainops.config import ChainOpsConfig
from chainops.errors import (RpcError, SubmissionExhausted,
                             TransientNetworkFailure, TxError)
from chainops.logging import context
from chainops.tx import (Account, ActionRequest, AttemptOutcome, Coordinator,
                         Deploy, DeployedContract, EntryPoint, Invoke,
                         Overrides, PendingTx, Receipt)

pytestmark = pytest.mark.anyio

SIGNER = "0x00000000000000000000000000000000000000a1"
GAME = "0x00000000000000000000000000000000000000b2"
CONTRACT = "0x00000000000000000000000000000000000000c3"

FINALIZE = EntryPoint("finalizeGame", ("uint256", "bytes"), address=GAME)
TREASURY = EntryPoint("Treasury", ("address",), bytecode=b"\x60\x80")


@dataclass
class Sent:
    kind: str
    nonce: int
    fee: int
    args: List[Any]
    gas: Optional[int] = None
    tx_hash: Optional[str] = None


@dataclass
class FakeLedger:
    """
    In-memory fee/nonce oracle + network client.

    - `fees` are handed out in order by current_fee_per_unit (last one repeats)
    - `reject_next` sends fail with an RpcError before a hash is produced
    - the first `stalls` waits never resolve until cancelled
    - `wait_errors` are raised by the next waits, in order
    - every wait sleeps `wait_delay_s` before confirming
    - a confirmed transaction advances both sequence numbers
    """

    fees: List[int] = field(default_factory=lambda: [100])
    pending: int = 5
    confirmed: int = 5
    addresses: List[str] = field(default_factory=lambda: [SIGNER])
    reject_next: int = 0
    stalls: int = 0
    wait_delay_s: float = 0.0
    revert: bool = False
    wait_errors: List[BaseException] = field(default_factory=list)

    submissions: List[Sent] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    calls: Counter = field(default_factory=Counter)
    _waits: int = 0

    async def current_fee_per_unit(self) -> int:
        self.calls["fee"] += 1
        idx = min(self.calls["fee"] - 1, len(self.fees) - 1)
        return self.fees[idx]

    async def pending_sequence_number(self, address: str) -> int:
        assert address == SIGNER
        self.calls["pending"] += 1
        return self.pending

    async def confirmed_sequence_number(self, address: str) -> int:
        assert address == SIGNER
        self.calls["confirmed"] += 1
        return self.confirmed

    async def accounts(self) -> List[str]:
        return list(self.addresses)

    async def deploy(self, entry: EntryPoint, request: ActionRequest, account: Account) -> PendingTx:
        return self._send("deploy", request)

    async def invoke(self, entry: EntryPoint, request: ActionRequest, account: Account) -> PendingTx:
        return self._send("invoke", request)

    def _send(self, kind: str, request: ActionRequest) -> PendingTx:
        ov = request.overrides
        sent = Sent(kind, ov.nonce, ov.fee_per_unit, list(request.args), gas=ov.gas_limit)
        self.submissions.append(sent)
        if self.reject_next > 0:
            self.reject_next -= 1
            raise RpcError(code=-32000, message="nonce too low", method="eth_sendTransaction")
        sent.tx_hash = "0x%064x" % len(self.submissions)
        return PendingTx(tx_hash=sent.tx_hash, nonce=ov.nonce, fee_per_unit=ov.fee_per_unit)

    async def wait(self, pending: PendingTx) -> Receipt:
        self._waits += 1
        if self._waits <= self.stalls:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(pending.tx_hash)
                raise
        if self.wait_errors:
            raise self.wait_errors.pop(0)
        if self.wait_delay_s:
            await asyncio.sleep(self.wait_delay_s)
        kind = self.submissions[-1].kind
        if not self.revert:
            self.pending += 1
            self.confirmed += 1
        return Receipt(
            tx_hash=pending.tx_hash,
            block_number=10,
            status=0 if self.revert else 1,
            contract_address=CONTRACT if kind == "deploy" else None,
        )


class Sleeper:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _coordinator(ledger: FakeLedger, sleeper: Sleeper, **cfg: Any) -> Coordinator:
    config = ChainOpsConfig(confirmation_timeout_s=cfg.pop("confirmation_timeout_s", 0.05), **cfg)
    return Coordinator(ledger, ledger, Account(SIGNER), config, sleep=sleeper)


@pytest.fixture
def sleeper() -> Sleeper:
    return Sleeper()


# --------------------------------------------------------------------------- #
# Invoke
# --------------------------------------------------------------------------- #

async def test_invoke_confirms_first_time(sleeper):
    ledger = FakeLedger()
    coord = _coordinator(ledger, sleeper)
    request = ActionRequest(args=[1, b"\x00"])

    pending = await coord.submit(Invoke(FINALIZE), request)

    assert isinstance(pending, PendingTx)
    assert pending.receipt is not None and pending.receipt.succeeded
    assert [(s.nonce, s.fee) for s in ledger.submissions] == [(5, 100)]
    assert (pending.nonce, pending.fee_per_unit) == (5, 100)
    assert request.overrides == Overrides()
    assert ledger.submissions[0].args == [1, b"\x00"]
    assert sleeper.calls == []


async def test_resubmitting_the_same_request_takes_a_fresh_nonce(sleeper):
    ledger = FakeLedger(fees=[100, 120])
    coord = _coordinator(ledger, sleeper)
    request = ActionRequest(args=[1, b""])

    await coord.submit(Invoke(FINALIZE), request)
    await coord.submit(Invoke(FINALIZE), request)

    assert [(s.nonce, s.fee) for s in ledger.submissions] == [(5, 100), (6, 120)]
    assert ledger.calls["pending"] == 2
    assert request.overrides.nonce is None
    assert request.overrides.fee_per_unit is None


async def test_network_timeout_inside_wait_is_a_failed_attempt(sleeper):
    ledger = FakeLedger(wait_errors=[TimeoutError("receipt poll timed out")])
    coord = _coordinator(ledger, sleeper, confirmation_timeout_s=5)

    pending = await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert pending.receipt is not None
    # cool-down and a second outer attempt, no fee escalation
    assert sleeper.calls == [30.0]
    assert [s.fee for s in ledger.submissions] == [100, 100]
    assert ledger.calls["fee"] == 2
    assert ledger.cancelled == []


async def test_single_timeout_escalates_once_at_same_nonce(sleeper):
    ledger = FakeLedger(stalls=1)
    coord = _coordinator(ledger, sleeper)

    pending = await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    first, second = ledger.submissions
    assert second.nonce == first.nonce == 5
    assert second.fee > first.fee
    assert second.fee == 110  # 10% bump over an unchanged quote
    assert pending.tx_hash == second.tx_hash
    # the stalled wait was cancelled, not left running
    assert ledger.cancelled == [first.tx_hash]
    assert sleeper.calls == []


async def test_escalation_takes_a_higher_fresh_quote(sleeper):
    ledger = FakeLedger(stalls=1, fees=[100, 500])
    coord = _coordinator(ledger, sleeper)

    await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert [s.fee for s in ledger.submissions] == [100, 500]


async def test_escalation_never_lowers_the_fee(sleeper):
    ledger = FakeLedger(stalls=3, fees=[100, 40, 40, 40])
    coord = _coordinator(ledger, sleeper, fee_bump_percent=0)

    await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    fees = [s.fee for s in ledger.submissions]
    assert len(fees) == 4
    assert fees == sorted(fees)
    assert {s.nonce for s in ledger.submissions} == {5}
    assert len(ledger.cancelled) == 3


async def test_two_submission_failures_exhaust(sleeper):
    ledger = FakeLedger(reject_next=2)
    coord = _coordinator(ledger, sleeper)

    with pytest.raises(SubmissionExhausted) as ei:
        await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    exc = ei.value
    assert isinstance(exc.last_error, TransientNetworkFailure)
    assert exc.last_error.attempt == 2
    assert exc.last_error.nonce == 5
    assert isinstance(exc.last_error.__cause__, RpcError)
    assert exc.__cause__ is exc.last_error
    assert [a.outcome for a in exc.attempts] == [AttemptOutcome.REJECTED] * 2
    assert ledger.calls["pending"] >= 2
    assert len(ledger.submissions) == 2
    # one cool-down between the two outer attempts
    assert sleeper.calls == [30.0]


async def test_failure_then_success_recovers(sleeper):
    ledger = FakeLedger(reject_next=1)
    coord = _coordinator(ledger, sleeper, cooldown_s=2.5)

    pending = await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert pending.receipt is not None
    assert len(ledger.submissions) == 2
    assert sleeper.calls == [2.5]
    assert ledger.calls["confirmed"] == 1


async def test_nonce_recovery_reuses_confirmed_when_queue_is_stuck(sleeper):
    ledger = FakeLedger(reject_next=1, pending=7, confirmed=5)
    coord = _coordinator(ledger, sleeper)

    await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert [s.nonce for s in ledger.submissions] == [7, 5]


async def test_nonce_recovery_uses_pending_without_gap(sleeper):
    ledger = FakeLedger(reject_next=1, pending=6, confirmed=6)
    coord = _coordinator(ledger, sleeper)

    await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert [s.nonce for s in ledger.submissions] == [6, 6]


async def test_retry_after_failure_does_not_lower_fee(sleeper):
    ledger = FakeLedger(reject_next=1, fees=[300, 100])
    coord = _coordinator(ledger, sleeper)

    await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert [s.fee for s in ledger.submissions] == [300, 300]


async def test_revert_counts_as_failed_attempt(sleeper):
    ledger = FakeLedger(revert=True)
    coord = _coordinator(ledger, sleeper)

    with pytest.raises(SubmissionExhausted) as ei:
        await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    assert isinstance(ei.value.last_error, TransientNetworkFailure)
    assert isinstance(ei.value.last_error.__cause__, TxError)
    assert len(ledger.submissions) == 2


async def test_timed_out_attempts_record_the_deadline(sleeper):
    ledger = FakeLedger(stalls=1, revert=True)
    coord = _coordinator(ledger, sleeper, max_attempts=1)

    with pytest.raises(SubmissionExhausted) as ei:
        await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    timed_out, reverted = ei.value.attempts
    assert timed_out.outcome is AttemptOutcome.TIMED_OUT
    assert "ConfirmationTimeout" in timed_out.error
    assert timed_out.pending.tx_hash in timed_out.error
    assert reverted.outcome is AttemptOutcome.REJECTED


async def test_caller_overrides_are_honoured(sleeper):
    ledger = FakeLedger()
    coord = _coordinator(ledger, sleeper)
    request = ActionRequest(args=[1, b""], overrides=Overrides(nonce=42, fee_per_unit=7, gas_limit=90_000))

    await coord.submit(Invoke(FINALIZE), request)

    assert [(s.nonce, s.fee) for s in ledger.submissions] == [(42, 7)]
    assert ledger.calls["pending"] == 0
    assert ledger.calls["fee"] == 0
    assert ledger.submissions[0].gas == 90_000


async def test_config_gas_limit_fills_submission(sleeper):
    ledger = FakeLedger()
    coord = _coordinator(ledger, sleeper, gas_limit=250_000)
    request = ActionRequest(args=[1, b""])

    await coord.submit(Invoke(FINALIZE), request)

    assert ledger.submissions[0].gas == 250_000
    assert request.overrides.gas_limit is None


async def test_invoke_logs_selector_and_target(sleeper, caplog):
    ledger = FakeLedger()
    coord = _coordinator(ledger, sleeper)

    with caplog.at_level(logging.INFO, logger="chainops.tx.coordinator"):
        await coord.submit(Invoke(FINALIZE), ActionRequest(args=[1, b""]))

    sending = [r for r in caplog.records if r.getMessage() == "sending transaction"]
    assert len(sending) == 1
    assert sending[0].selector == FINALIZE.selector_hex
    assert sending[0].to == GAME
    assert sending[0].fee_per_unit == 100
    # trace scope is unwound after the call
    assert context() == {}


# --------------------------------------------------------------------------- #
# Deploy
# --------------------------------------------------------------------------- #

async def test_deploy_returns_contract_address(sleeper):
    ledger = FakeLedger()
    coord = _coordinator(ledger, sleeper)

    deployed = await coord.submit(Deploy(TREASURY), ActionRequest(args=[SIGNER]))

    assert isinstance(deployed, DeployedContract)
    assert deployed.address == CONTRACT
    assert deployed.receipt.succeeded


async def test_slow_deploy_is_never_resubmitted(sleeper):
    ledger = FakeLedger(wait_delay_s=0.15)
    coord = _coordinator(ledger, sleeper, confirmation_timeout_s=0.02)

    deployed = await coord.deploy(TREASURY, SIGNER)

    assert deployed.address == CONTRACT
    assert len(ledger.submissions) == 1
    assert ledger.calls["fee"] == 1


async def test_deploy_failures_exhaust_without_escalation(sleeper):
    ledger = FakeLedger(reject_next=2)
    coord = _coordinator(ledger, sleeper)

    with pytest.raises(SubmissionExhausted):
        await coord.submit(Deploy(TREASURY), ActionRequest(args=[SIGNER]))

    assert [s.kind for s in ledger.submissions] == ["deploy", "deploy"]


# --------------------------------------------------------------------------- #
# Construction
# --------------------------------------------------------------------------- #

async def test_connect_resolves_first_account(sleeper):
    ledger = FakeLedger(addresses=[SIGNER, GAME])
    coord = await Coordinator.connect(ledger, ChainOpsConfig(), sleep=sleeper)
    assert coord.account == Account(SIGNER)

    pending = await coord.invoke(FINALIZE, 3, b"\x01")
    assert pending.receipt is not None


async def test_connect_without_accounts_fails():
    with pytest.raises(TxError):
        await Coordinator.connect(FakeLedger(addresses=[]))


async def test_unknown_action_type_rejected(sleeper):
    coord = _coordinator(FakeLedger(), sleeper)
    with pytest.raises(TypeError):
        await coord.submit(FINALIZE)  # type: ignore[arg-type]
