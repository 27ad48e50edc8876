"""
chainops: resilient contract deployment and transaction submission for
EVM-style ledgers, plus the report codec and rakeback tiers the game scripts
build their payloads with.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import ChainOpsConfig  # noqa: F401
from .errors import (  # noqa: F401
    ChainOpsError,
    ConfirmationTimeout,
    MalformedReportInput,
    RpcError,
    SubmissionExhausted,
    TransientNetworkFailure,
    TxError,
)

# RPC
from .rpc.http import RpcClient  # noqa: F401

# Submission
from .tx import (  # noqa: F401
    ActionRequest,
    Coordinator,
    Deploy,
    DeployedContract,
    EntryPoint,
    EvmLedger,
    Invoke,
    Overrides,
    PendingTx,
    Receipt,
)

# Reports & rewards
from .reports import Report, encode_report, to_fixed  # noqa: F401
from .rewards import rakeback_amount, tier_for  # noqa: F401

__all__ = [
    "__version__",
    # Core
    "ChainOpsConfig",
    "ChainOpsError", "RpcError", "TxError", "TransientNetworkFailure",
    "ConfirmationTimeout", "SubmissionExhausted", "MalformedReportInput",
    # RPC
    "RpcClient",
    # Submission
    "Coordinator", "EvmLedger", "EntryPoint", "Deploy", "Invoke",
    "ActionRequest", "Overrides", "PendingTx", "Receipt", "DeployedContract",
    # Reports & rewards
    "Report", "encode_report", "to_fixed",
    "tier_for", "rakeback_amount",
]
