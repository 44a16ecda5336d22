"""Guard functions for `perppool`.

One pure function per action. Each returns ``None`` when the action is
allowed in the given PRE-state, or the rejection code otherwise. Checks run
in a fixed order so the reported code is deterministic when several fail.
"""

from __future__ import annotations

from .config import MarketConfig
from .math import max_size_for
from .settlement import settle_close, settle_liquidation
from .types import ActionParams, MarketState


def _clock_ok(state: MarketState, params: ActionParams) -> bool:
    return params.now >= state.last_funding_timestamp


def guard_open(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if params.size_quote <= 0:
        return "zero_size"
    if params.collateral <= 0:
        return "zero_amount"
    if params.trader in state.positions:
        return "duplicate_position"
    if params.size_quote > max_size_for(params.collateral, config.leverage_cap, config.collateral_scale):
        return "exceeds_max_leverage"
    if params.price_e8 <= 0:
        return "invalid_price"
    if not _clock_ok(state, params):
        return "clock_regression"
    return None


def guard_close(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if params.trader not in state.positions:
        return "no_position"
    if params.price_e8 <= 0:
        return "invalid_price"
    if not _clock_ok(state, params):
        return "clock_regression"
    s = settle_close(state, config, params.trader, params.now, params.price_e8)
    if s.advanced.pool_balance + s.pool_delta < 0:
        return "insufficient_pool_liquidity"
    return None


def guard_liquidate(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if params.trader not in state.positions:
        return "no_position"
    if params.price_e8 <= 0:
        return "invalid_price"
    if not _clock_ok(state, params):
        return "clock_regression"
    s = settle_liquidation(state, config, params.trader, params.now, params.price_e8)
    if not s.liquidatable:
        return "position_healthy"
    return None


def guard_deposit_liquidity(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if params.amount <= 0:
        return "zero_amount"
    return None


def guard_withdraw_liquidity(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if params.amount <= 0:
        return "zero_amount"
    if params.amount > state.pool_balance:
        return "insufficient_pool_liquidity"
    return None


def guard_deposit_insurance(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if params.amount <= 0:
        return "zero_amount"
    return None


def guard_advance_funding(state: MarketState, params: ActionParams, config: MarketConfig) -> str | None:
    if not _clock_ok(state, params):
        return "clock_regression"
    return None
