"""Invariant checkers for `perppool`.

Each function returns True when the invariant holds, and `check_all()`
returns the list of violated invariant IDs (empty = all pass). The engine
runs `check_all()` on every post-state before accepting a step.

`remaining_margin >= 0` is not listed: it holds by construction (clamped in
`math.remaining_margin`) and depends on the live price, not on state alone.
"""

from __future__ import annotations

from typing import Callable

from .types import MarketState


def inv_long_oi_matches_positions(s: MarketState) -> bool:
    return s.long_open_interest == sum(p.size_quote for p in s.positions.values() if p.is_long)


def inv_short_oi_matches_positions(s: MarketState) -> bool:
    return s.short_open_interest == sum(p.size_quote for p in s.positions.values() if not p.is_long)


def inv_collateral_locked_matches_positions(s: MarketState) -> bool:
    return s.collateral_locked == sum(p.collateral for p in s.positions.values())


def inv_open_interest_nonneg(s: MarketState) -> bool:
    return s.long_open_interest >= 0 and s.short_open_interest >= 0


def inv_pool_nonneg(s: MarketState) -> bool:
    return s.pool_balance >= 0


def inv_insurance_nonneg(s: MarketState) -> bool:
    return s.insurance_fund >= 0


def inv_timestamp_nonneg(s: MarketState) -> bool:
    return s.last_funding_timestamp >= 0


def inv_trader_ids_nonempty(s: MarketState) -> bool:
    return all(isinstance(k, str) and k for k in s.positions)


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[MarketState], bool]] = {
    "inv_long_oi_matches_positions": inv_long_oi_matches_positions,
    "inv_short_oi_matches_positions": inv_short_oi_matches_positions,
    "inv_collateral_locked_matches_positions": inv_collateral_locked_matches_positions,
    "inv_open_interest_nonneg": inv_open_interest_nonneg,
    "inv_pool_nonneg": inv_pool_nonneg,
    "inv_insurance_nonneg": inv_insurance_nonneg,
    "inv_timestamp_nonneg": inv_timestamp_nonneg,
    "inv_trader_ids_nonempty": inv_trader_ids_nonempty,
}


def check_all(state: MarketState) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state)
    ]
