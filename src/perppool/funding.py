"""Funding index accumulator.

A single global counter, ``cumulative_funding_per_unit``, records the
funding owed per unit of size since market creation (the same shape as an
interest-accrual index). A position snapshots it at open; its pending
funding is ``size * (live_index - entry_index)``. Advancing is O(1)
regardless of how many positions are open.

`advance()` must run before anything reads or changes open interest, so a
rate window never spans an open-interest change.
"""

from __future__ import annotations

from dataclasses import replace

from .config import MarketConfig
from .errors import ClockRegression
from .math import accrued_index_delta, funding_rate
from .types import MarketState


def current_rate(state: MarketState, config: MarketConfig) -> int:
    """Signed per-day rate (1e18) implied by the current open-interest skew."""
    return funding_rate(state.long_open_interest, state.short_open_interest, config.skew_scale)


def _elapsed(state: MarketState, now: int) -> int:
    elapsed = now - state.last_funding_timestamp
    if elapsed < 0:
        raise ClockRegression(
            f"now={now} precedes last_funding_timestamp={state.last_funding_timestamp}"
        )
    return elapsed


def preview_index(state: MarketState, config: MarketConfig, now: int) -> int:
    """Live index at *now* without mutating *state*.

    Always equals ``advance(state, config, now).cumulative_funding_per_unit``.
    """
    delta = accrued_index_delta(current_rate(state, config), _elapsed(state, now), config.seconds_per_day)
    return state.cumulative_funding_per_unit + delta


def advance(state: MarketState, config: MarketConfig, now: int) -> MarketState:
    """Accrue funding up to *now*. Idempotent: a second call at the same *now* is a no-op."""
    if _elapsed(state, now) == 0:
        return state
    return replace(
        state,
        cumulative_funding_per_unit=preview_index(state, config, now),
        last_funding_timestamp=now,
    )
