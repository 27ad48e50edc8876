"""
Data model for transaction submission.

An `Action` is an explicit tagged union, `Deploy(entry)` or `Invoke(entry)`,
so the coordinator dispatches with `match` instead of probing the shape of the
target at runtime. Arguments and submission metadata travel separately in an
`ActionRequest`: positional ABI arguments in `args`, nonce/fee/gas overrides in
`overrides`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_utils import keccak

from ..utils.bytes import to_hex


@dataclass(frozen=True)
class EntryPoint:
    """
    A contract entry point.

    For deploys `name` is the contract name, `arg_types` the constructor
    parameter types and `bytecode` the creation code. For invokes `name` is the
    function name, `arg_types` its parameter types and `address` the target.
    """

    name: str
    arg_types: Tuple[str, ...] = ()
    address: Optional[str] = None
    bytecode: Optional[bytes] = None

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.arg_types)})"

    @property
    def selector(self) -> bytes:
        """First four bytes of keccak-256(signature)."""
        return keccak(text=self.signature)[:4]

    @property
    def selector_hex(self) -> str:
        return to_hex(self.selector)


@dataclass(frozen=True)
class Deploy:
    entry: EntryPoint


@dataclass(frozen=True)
class Invoke:
    entry: EntryPoint


Action = Union[Deploy, Invoke]


@dataclass
class Overrides:
    nonce: Optional[int] = None
    fee_per_unit: Optional[int] = None
    gas_limit: Optional[int] = None


@dataclass
class ActionRequest:
    """Positional ABI arguments plus caller overrides. The coordinator resolves unset fields on its own copy."""

    args: List[Any] = field(default_factory=list)
    overrides: Overrides = field(default_factory=Overrides)


@dataclass(frozen=True)
class Account:
    address: str


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: Optional[int] = None
    status: Optional[int] = None
    contract_address: Optional[str] = None
    gas_used: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status is None or self.status == 1


@dataclass
class PendingTx:
    """Handle for a broadcast transaction. `receipt` is set once confirmed."""

    tx_hash: str
    nonce: int
    fee_per_unit: int
    selector: Optional[str] = None
    to: Optional[str] = None
    receipt: Optional[Receipt] = None


@dataclass(frozen=True)
class DeployedContract:
    address: Optional[str]
    receipt: Receipt


class AttemptOutcome(str, Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"


@dataclass
class SubmissionAttempt:
    """One try at submitting an action. Lives only for the duration of a submit call."""

    attempt: int
    nonce: Optional[int]
    fee_per_unit: Optional[int]
    pending: Optional[PendingTx] = None
    outcome: Optional[AttemptOutcome] = None
    error: Optional[str] = None


__all__ = [
    "EntryPoint",
    "Deploy",
    "Invoke",
    "Action",
    "Overrides",
    "ActionRequest",
    "Account",
    "Receipt",
    "PendingTx",
    "DeployedContract",
    "AttemptOutcome",
    "SubmissionAttempt",
]
