"""Effect functions for `perppool`.

One pure function per action. Market-wide observables are read from the
POST-state; value movements of close/liquidate come from the settlement of
the PRE-state, since the position no longer exists afterwards.
"""

from __future__ import annotations

from .config import MarketConfig
from .funding import current_rate
from .settlement import settle_close, settle_liquidation
from .types import ActionParams, Effect, Event, MarketState


def _common_effects(state: MarketState, config: MarketConfig) -> dict[str, int]:
    return dict(
        funding_index=state.cumulative_funding_per_unit,
        funding_rate=current_rate(state, config),
        long_open_interest=state.long_open_interest,
        short_open_interest=state.short_open_interest,
        pool_after=state.pool_balance,
        insurance_after=state.insurance_fund,
    )


def effect_open(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    return Effect(
        event=Event.POSITION_OPENED,
        account=params.trader,
        amount_in=params.collateral,
        remaining_margin=params.collateral,
        **_common_effects(after, config),
    )


def effect_close(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    s = settle_close(before, config, params.trader, params.now, params.price_e8)
    return Effect(
        event=Event.POSITION_CLOSED,
        account=params.trader,
        amount_out=s.payout,
        pool_delta=s.pool_delta,
        remaining_margin=s.remaining_margin,
        **_common_effects(after, config),
    )


def effect_liquidate(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    s = settle_liquidation(before, config, params.trader, params.now, params.price_e8)
    return Effect(
        event=Event.POSITION_LIQUIDATED,
        account=params.trader,
        caller=params.caller,
        keeper_fee=s.keeper_fee,
        insurance_credit=s.insurance_credit,
        pool_delta=s.pool_delta,
        bad_debt=s.bad_debt,
        remaining_margin=s.remaining_margin,
        **_common_effects(after, config),
    )


def effect_deposit_liquidity(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    return Effect(
        event=Event.LIQUIDITY_DEPOSITED,
        account=params.caller,
        amount_in=params.amount,
        pool_delta=params.amount,
        **_common_effects(after, config),
    )


def effect_withdraw_liquidity(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    return Effect(
        event=Event.LIQUIDITY_WITHDRAWN,
        account=params.caller,
        amount_out=params.amount,
        pool_delta=-params.amount,
        **_common_effects(after, config),
    )


def effect_deposit_insurance(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    return Effect(
        event=Event.INSURANCE_DEPOSITED,
        account=params.caller,
        amount_in=params.amount,
        insurance_credit=params.amount,
        **_common_effects(after, config),
    )


def effect_advance_funding(before: MarketState, after: MarketState, params: ActionParams, config: MarketConfig) -> Effect:
    return Effect(event=Event.FUNDING_ADVANCED, **_common_effects(after, config))
