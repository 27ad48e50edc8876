"""
chainops configuration: RPC endpoint, chain id, transport retries and the
submission timings of the coordinator.

- Loads defaults and supports overrides via environment variables (CHAINOPS_*).
- Provides helpers for building HTTP headers and validating endpoints.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .version import user_agent

_DEFAULT_RPC = "http://127.0.0.1:8545"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


def _parse_int(val: Any, default: int) -> int:
    """
    Accepts int, decimal str, or 0x-hex str and returns int.
    """
    if val is None or val == "":
        return int(default)
    if isinstance(val, int):
        return val
    s = str(val).strip()
    if _HEX_RE.match(s):
        return int(s, 16)
    return int(s, 10)


def _parse_optional_int(val: Any) -> Optional[int]:
    if val is None or val == "":
        return None
    return _parse_int(val, 0)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None else default


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ValueError(f"URL must start with {allowed}, got: {url!r}")
    return url


@dataclass(slots=True)
class ChainOpsConfig:
    # Endpoint
    rpc_url: str = _DEFAULT_RPC
    chain_id: int = 31337
    # Transport behavior
    request_timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 1.8
    # Submission behavior
    confirmation_timeout_s: float = 180.0
    cooldown_s: float = 30.0
    max_attempts: int = 2
    fee_bump_percent: int = 10
    poll_interval_s: float = 1.0
    gas_limit: Optional[int] = None
    # Headers / identity
    user_agent: str = field(default_factory=user_agent)

    def __post_init__(self) -> None:
        _ensure_scheme(self.rpc_url, ("http", "https"))
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.confirmation_timeout_s <= 0:
            raise ValueError("confirmation_timeout_s must be positive")
        if self.cooldown_s < 0:
            raise ValueError("cooldown_s must be non-negative")
        if self.fee_bump_percent < 0:
            raise ValueError("fee_bump_percent must be non-negative")

    @classmethod
    def from_env(cls, prefix: str = "CHAINOPS_") -> "ChainOpsConfig":
        """
        Create config from environment variables:

        CHAINOPS_RPC_URL            (http/https)
        CHAINOPS_CHAIN_ID           (int or 0x-hex)
        CHAINOPS_TIMEOUT            (float seconds, HTTP)
        CHAINOPS_MAX_RETRIES        (int, transport retries)
        CHAINOPS_BACKOFF            (float, transport backoff factor)
        CHAINOPS_CONFIRM_TIMEOUT    (float seconds before fee escalation)
        CHAINOPS_COOLDOWN           (float seconds after a failed attempt)
        CHAINOPS_MAX_ATTEMPTS       (int, outer submission attempts)
        CHAINOPS_FEE_BUMP_PERCENT   (int, minimum escalation step)
        CHAINOPS_POLL_INTERVAL      (float seconds between receipt polls)
        CHAINOPS_GAS_LIMIT          (int, optional fixed gas limit)
        CHAINOPS_USER_AGENT         (str)
        """
        return cls(
            rpc_url=_env(f"{prefix}RPC_URL", _DEFAULT_RPC) or _DEFAULT_RPC,
            chain_id=_parse_int(_env(f"{prefix}CHAIN_ID"), 31337),
            request_timeout=float(_env(f"{prefix}TIMEOUT", "30.0")),
            max_retries=int(_env(f"{prefix}MAX_RETRIES", "3")),
            backoff_factor=float(_env(f"{prefix}BACKOFF", "1.8")),
            confirmation_timeout_s=float(_env(f"{prefix}CONFIRM_TIMEOUT", "180")),
            cooldown_s=float(_env(f"{prefix}COOLDOWN", "30")),
            max_attempts=int(_env(f"{prefix}MAX_ATTEMPTS", "2")),
            fee_bump_percent=int(_env(f"{prefix}FEE_BUMP_PERCENT", "10")),
            poll_interval_s=float(_env(f"{prefix}POLL_INTERVAL", "1.0")),
            gas_limit=_parse_optional_int(_env(f"{prefix}GAS_LIMIT")),
            user_agent=_env(f"{prefix}USER_AGENT") or user_agent(),
        )

    @classmethod
    def with_overrides(
        cls, base: Optional["ChainOpsConfig"] = None, **overrides: Any
    ) -> "ChainOpsConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        if "chain_id" in overrides:
            data["chain_id"] = _parse_int(overrides["chain_id"], base.chain_id)
        return cls(**data)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rpc_url": self.rpc_url,
            "chain_id": int(self.chain_id),
            "request_timeout": float(self.request_timeout),
            "max_retries": int(self.max_retries),
            "backoff_factor": float(self.backoff_factor),
            "confirmation_timeout_s": float(self.confirmation_timeout_s),
            "cooldown_s": float(self.cooldown_s),
            "max_attempts": int(self.max_attempts),
            "fee_bump_percent": int(self.fee_bump_percent),
            "poll_interval_s": float(self.poll_interval_s),
            "gas_limit": self.gas_limit,
            "user_agent": self.user_agent,
        }


__all__ = ["ChainOpsConfig"]
