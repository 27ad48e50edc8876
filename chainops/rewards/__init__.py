from __future__ import annotations

from .rakeback import MAX_TIER, ONE_TOKEN, RAKEBACK_THRESHOLDS, rakeback_amount, tier_for

__all__ = ["MAX_TIER", "ONE_TOKEN", "RAKEBACK_THRESHOLDS", "rakeback_amount", "tier_for"]
