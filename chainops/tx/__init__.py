"""
chainops.tx
===========

Transaction submission: the data model, collaborator protocols, the resilient
`Coordinator` and the JSON-RPC backed `EvmLedger`.
"""

from __future__ import annotations

from .coordinator import Coordinator
from .evm import EvmLedger
from .interfaces import AccountSource, FeeNonceOracle, NetworkClient
from .types import (Account, Action, ActionRequest, AttemptOutcome, Deploy,
                    DeployedContract, EntryPoint, Invoke, Overrides,
                    PendingTx, Receipt, SubmissionAttempt)

__all__ = [
    "Coordinator",
    "EvmLedger",
    "AccountSource",
    "FeeNonceOracle",
    "NetworkClient",
    "Account",
    "Action",
    "ActionRequest",
    "AttemptOutcome",
    "Deploy",
    "DeployedContract",
    "EntryPoint",
    "Invoke",
    "Overrides",
    "PendingTx",
    "Receipt",
    "SubmissionAttempt",
]
