"""
Rakeback tiers.

A holder's token balance (18 decimals) maps to a tier 0..10; the tier is also
the rakeback rate in percent applied to a deposit.
"""

from __future__ import annotations

from typing import Tuple

ONE_TOKEN = 10**18

# Ascending; tier i (1-based) is reached at RAKEBACK_THRESHOLDS[i-1].
RAKEBACK_THRESHOLDS: Tuple[int, ...] = tuple(
    n * ONE_TOKEN
    for n in (500, 2_500, 5_000, 12_500, 25_000, 50_000, 125_000, 250_000, 500_000, 1_250_000)
)

MAX_TIER = len(RAKEBACK_THRESHOLDS)


def _check_amount(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int (scaled 1e18), got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def tier_for(balance: int) -> int:
    """Return the tier in [0, MAX_TIER] for a balance scaled 1e18."""
    balance = _check_amount(balance, "balance")
    if balance < RAKEBACK_THRESHOLDS[0]:
        return 0
    for i in range(MAX_TIER, 0, -1):
        if balance >= RAKEBACK_THRESHOLDS[i - 1]:
            return i
    return 0


def rakeback_amount(amount: int, balance: int) -> int:
    """Rakeback owed on `amount` for a holder of `balance` (floor division)."""
    amount = _check_amount(amount, "amount")
    return amount * tier_for(balance) // 100


__all__ = ["ONE_TOKEN", "RAKEBACK_THRESHOLDS", "MAX_TIER", "tier_for", "rakeback_amount"]
