"""State transition functions for `perppool`.

One pure function per action. Each returns a new `MarketState` with the
action's updates applied; the input state is never modified.

Semantics:
- updates evaluate against the PRE-state, after the guard accepted it,
- lifecycle actions advance the funding accumulator before touching open interest,
- the positions mapping is rebuilt copy-on-write.
"""

from __future__ import annotations

from dataclasses import replace

from .config import MarketConfig
from .funding import advance
from .settlement import Settlement, settle_close, settle_liquidation
from .types import ActionParams, MarketState, Position


def _remove_position(trader: str, s: Settlement) -> MarketState:
    """Drop *trader*'s position from the advanced state and release its open interest."""
    advanced = s.advanced
    position = s.position
    positions = {k: v for k, v in advanced.positions.items() if k != trader}
    return replace(
        advanced,
        positions=positions,
        long_open_interest=advanced.long_open_interest - (position.size_quote if position.is_long else 0),
        short_open_interest=advanced.short_open_interest - (0 if position.is_long else position.size_quote),
        collateral_locked=advanced.collateral_locked - position.collateral,
        pool_balance=advanced.pool_balance + s.pool_delta,
    )


def apply_open(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    advanced = advance(state, config, params.now)
    position = Position(
        size_quote=params.size_quote,
        collateral=params.collateral,
        entry_price_e8=params.price_e8,
        is_long=params.is_long,
        entry_funding_index=advanced.cumulative_funding_per_unit,
    )
    positions = dict(advanced.positions)
    positions[params.trader] = position
    return replace(
        advanced,
        positions=positions,
        long_open_interest=advanced.long_open_interest + (params.size_quote if params.is_long else 0),
        short_open_interest=advanced.short_open_interest + (0 if params.is_long else params.size_quote),
        collateral_locked=advanced.collateral_locked + params.collateral,
    )


def apply_close(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    s = settle_close(state, config, params.trader, params.now, params.price_e8)
    return _remove_position(params.trader, s)


def apply_liquidate(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    s = settle_liquidation(state, config, params.trader, params.now, params.price_e8)
    after = _remove_position(params.trader, s)
    return replace(after, insurance_fund=after.insurance_fund + s.insurance_credit)


def apply_deposit_liquidity(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    return replace(state, pool_balance=state.pool_balance + params.amount)


def apply_withdraw_liquidity(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    return replace(state, pool_balance=state.pool_balance - params.amount)


def apply_deposit_insurance(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    return replace(state, insurance_fund=state.insurance_fund + params.amount)


def apply_advance_funding(state: MarketState, params: ActionParams, config: MarketConfig) -> MarketState:
    return advance(state, config, params.now)
