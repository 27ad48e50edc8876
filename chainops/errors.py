"""
Typed error classes for chainops.

These are raised by rpc/http, tx/coordinator, tx/evm and reports/codec so
callers can catch specific failure modes while still being able to catch the
base `ChainOpsError`.

Submission taxonomy
-------------------
- TransientNetworkFailure : node rejected or dropped a submission; recovered
                            by the coordinator's outer loop.
- ConfirmationTimeout     : no inclusion before the confirmation deadline;
                            recovered by fee escalation, never surfaced.
- SubmissionExhausted     : every outer attempt failed; fatal.
- MalformedReportInput    : report codec input outside its bit width.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Sequence

__all__ = [
    "ChainOpsError",
    "RpcError",
    "TxError",
    "TransientNetworkFailure",
    "ConfirmationTimeout",
    "SubmissionExhausted",
    "MalformedReportInput",
    "JsonRpcCode",
    "from_jsonrpc_error",
]


class ChainOpsError(Exception):
    """Base class for all chainops errors."""


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 spec
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000
    TRANSPORT_ERROR = -32098

    # Common node extensions (kept as hints)
    LIMIT_EXCEEDED = -32005
    TX_REJECTED = -32003


@dataclass(eq=False)
class RpcError(ChainOpsError):
    """Raised when a JSON-RPC call returns an error object or the transport fails."""

    code: int
    message: str
    data: Optional[Any] = None
    method: Optional[str] = None
    request_id: Optional[Any] = None
    http_status: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.request_id is not None:
            parts.append(f"id={self.request_id}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(eq=False)
class TxError(ChainOpsError):
    """
    Raised when a submitted transaction fails (node rejection or on-chain revert).

    Fields:
      - tx_hash: hex hash if known (None if rejected pre-broadcast)
      - code: receipt status or node error code (if available)
      - message: human-readable description
      - receipt: raw receipt with more context
    """

    message: str
    tx_hash: Optional[str] = None
    code: Optional[int] = None
    receipt: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        suffix = f" tx={self.tx_hash}" if self.tx_hash else ""
        code = f" code={self.code}" if self.code is not None else ""
        return f"TxError{suffix}{code}: {self.message}"


@dataclass(eq=False)
class TransientNetworkFailure(ChainOpsError):
    """A submission was rejected or dropped by the node; the caller may retry."""

    message: str
    attempt: int = 0
    nonce: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"TransientNetworkFailure attempt={self.attempt} nonce={self.nonce}: {self.message}"


@dataclass(eq=False)
class ConfirmationTimeout(ChainOpsError):
    """No confirmation arrived before the deadline. Internal to the coordinator."""

    tx_hash: str
    timeout_s: float

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"ConfirmationTimeout tx={self.tx_hash} after {self.timeout_s:g}s"


@dataclass(eq=False)
class SubmissionExhausted(ChainOpsError):
    """
    Every outer attempt of a submission failed.

    `attempts` holds the SubmissionAttempt records of the call, oldest first.
    """

    attempts: Sequence[Any] = field(default_factory=tuple)
    last_error: Optional[BaseException] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return (
            f"SubmissionExhausted after {len(self.attempts)} attempt(s): "
            f"{self.last_error!r}"
        )


@dataclass(eq=False)
class MalformedReportInput(ChainOpsError, ValueError):
    """Report codec input does not fit the expected bit width or shape."""

    message: str
    field: Optional[str] = None
    value: Optional[Any] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" [{self.field}]" if self.field else ""
        return f"MalformedReportInput{where}: {self.message}"


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    request_id: Optional[Any] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into RpcError.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    """
    code = int(err_obj.get("code", JsonRpcCode.SERVER_ERROR))
    message = str(err_obj.get("message", "Unknown JSON-RPC error"))
    return RpcError(
        code=code,
        message=message,
        data=err_obj.get("data"),
        method=method,
        request_id=request_id,
        http_status=http_status,
    )
