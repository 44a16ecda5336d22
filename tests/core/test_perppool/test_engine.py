"""Tests for src/perppool/engine.py — dispatch table + step function.

Tests cover known action sequences end-to-end through the engine.
"""

from dataclasses import replace

import pytest

from perppool import (
    Action,
    ActionParams,
    ClockRegression,
    DuplicatePosition,
    Event,
    ExceedsMaxLeverage,
    InsufficientPoolLiquidity,
    MarketConfig,
    MarketState,
    NoPosition,
    PerpInvariantError,
    PerpOverflowError,
    PositionHealthy,
    ZeroAmount,
    ZeroSize,
    initial_state,
    step,
    step_or_raise,
)
from perppool.math import PRICE_SCALE

CFG = MarketConfig()
DAY = 86_400
P3000 = 3_000 * PRICE_SCALE


def _price(whole: int) -> int:
    return whole * PRICE_SCALE


def _ok(state: MarketState, params: ActionParams) -> MarketState:
    r = step(state, params, CFG)
    assert r.accepted, r.rejection
    assert r.state is not None
    return r.state


def _open(trader="alice", size=30_000, collateral=3_000, is_long=True, now=0, price=P3000) -> ActionParams:
    return ActionParams(
        action=Action.OPEN, now=now, price_e8=price, trader=trader,
        size_quote=size, collateral=collateral, is_long=is_long,
    )


def _close(trader="alice", now=0, price=P3000) -> ActionParams:
    return ActionParams(action=Action.CLOSE, now=now, price_e8=price, trader=trader)


def _liquidate(trader="alice", caller="keeper", now=0, price=P3000) -> ActionParams:
    return ActionParams(action=Action.LIQUIDATE, now=now, price_e8=price, trader=trader, caller=caller)


def _deposit(amount: int, now=0) -> ActionParams:
    return ActionParams(action=Action.DEPOSIT_LIQUIDITY, now=now, caller="lp", amount=amount)


def _with_pool(amount: int) -> MarketState:
    return _ok(initial_state(), _deposit(amount))


# ---------------------------------------------------------------------------
# open
# ---------------------------------------------------------------------------

class TestOpen:
    def test_basic(self):
        r = step(initial_state(), _open(), CFG)
        assert r.accepted
        pos = r.state.positions["alice"]
        assert pos.size_quote == 30_000
        assert pos.collateral == 3_000
        assert pos.entry_price_e8 == P3000
        assert pos.is_long is True
        assert pos.entry_funding_index == 0
        assert r.state.long_open_interest == 30_000
        assert r.state.short_open_interest == 0
        assert r.state.collateral_locked == 3_000
        assert r.effect.event == Event.POSITION_OPENED
        assert r.effect.account == "alice"
        assert r.effect.amount_in == 3_000

    def test_short_bucket(self):
        s = _ok(initial_state(), _open(is_long=False))
        assert s.short_open_interest == 30_000
        assert s.long_open_interest == 0

    def test_entry_index_snapshots_advanced_accumulator(self):
        s = _ok(initial_state(), _open("alice", 60_000, 6_000, True))
        s = _ok(s, _open("bob", 40_000, 4_000, False, now=DAY))
        assert s.cumulative_funding_per_unit == 6 * 10**16
        assert s.positions["bob"].entry_funding_index == 6 * 10**16
        assert s.last_funding_timestamp == DAY

    def test_zero_size(self):
        r = step(initial_state(), _open(size=0), CFG)
        assert not r.accepted
        assert r.rejection == "zero_size"
        assert r.state is None

    def test_negative_size(self):
        assert step(initial_state(), _open(size=-1), CFG).rejection == "zero_size"

    def test_zero_collateral(self):
        assert step(initial_state(), _open(collateral=0), CFG).rejection == "zero_amount"

    def test_zero_size_reported_before_zero_collateral(self):
        assert step(initial_state(), _open(size=0, collateral=0), CFG).rejection == "zero_size"

    def test_duplicate(self):
        s = _ok(initial_state(), _open())
        r = step(s, _open(is_long=False, size=1_000), CFG)
        assert r.rejection == "duplicate_position"

    def test_max_leverage_accepted(self):
        assert step(initial_state(), _open(size=30_000, collateral=3_000), CFG).accepted

    def test_exceeds_max_leverage(self):
        r = step(initial_state(), _open(size=30_001, collateral=3_000), CFG)
        assert r.rejection == "exceeds_max_leverage"

    def test_leverage_uses_collateral_scale(self):
        cfg = MarketConfig(collateral_scale=10**12)
        ok = step(initial_state(), _open(size=30_000 * 10**12, collateral=3_000), cfg)
        too_big = step(initial_state(), _open(size=30_000 * 10**12 + 1, collateral=3_000), cfg)
        assert ok.accepted
        assert too_big.rejection == "exceeds_max_leverage"

    def test_invalid_price(self):
        assert step(initial_state(), _open(price=0), CFG).rejection == "invalid_price"

    def test_clock_regression(self):
        r = step(initial_state(now=100), _open(now=50), CFG)
        assert r.rejection == "clock_regression"


# ---------------------------------------------------------------------------
# close
# ---------------------------------------------------------------------------

class TestClose:
    def test_no_position(self):
        assert step(initial_state(), _close(), CFG).rejection == "no_position"

    def test_round_trip_returns_collateral(self):
        s = _ok(initial_state(), _open())
        r = step(s, _close(), CFG)
        assert r.accepted
        assert r.effect.event == Event.POSITION_CLOSED
        assert r.effect.amount_out == 3_000
        assert r.effect.pool_delta == 0
        assert r.state.positions == {}
        assert r.state.long_open_interest == 0
        assert r.state.collateral_locked == 0
        assert r.state.pool_balance == 0

    def test_profit_drawn_from_pool(self):
        s = _ok(_with_pool(5_000), _open())
        r = step(s, _close(price=_price(3_300)), CFG)
        assert r.accepted
        assert r.effect.amount_out == 6_000
        assert r.effect.pool_delta == -3_000
        assert r.state.pool_balance == 2_000

    def test_profit_exactly_drains_pool(self):
        s = _ok(_with_pool(3_000), _open())
        r = step(s, _close(price=_price(3_300)), CFG)
        assert r.accepted
        assert r.state.pool_balance == 0

    def test_insufficient_pool_liquidity_keeps_position(self):
        s = _ok(_with_pool(2_999), _open())
        r = step(s, _close(price=_price(3_300)), CFG)
        assert not r.accepted
        assert r.rejection == "insufficient_pool_liquidity"
        assert "alice" in s.positions
        assert s.pool_balance == 2_999

    def test_loss_absorbed_by_pool(self):
        s = _ok(initial_state(), _open())
        r = step(s, _close(price=_price(2_700)), CFG)
        assert r.effect.amount_out == 0
        assert r.effect.pool_delta == 3_000
        assert r.state.pool_balance == 3_000

    def test_loss_beyond_collateral_pays_zero(self):
        s = _ok(initial_state(), _open())
        r = step(s, _close(price=_price(2_550)), CFG)
        assert r.accepted
        assert r.effect.amount_out == 0
        assert r.state.pool_balance == 3_000

    def test_unhealthy_position_may_still_close(self):
        s = _ok(initial_state(), _open())
        r = step(s, _close(price=_price(2_849)), CFG)
        assert r.accepted
        assert r.effect.amount_out == 1_490


# ---------------------------------------------------------------------------
# funding through the lifecycle
# ---------------------------------------------------------------------------

class TestFundingSettlement:
    def _two_sided(self) -> MarketState:
        s = _ok(_with_pool(10_000), _open("alice", 60_000, 6_000, True))
        return _ok(s, _open("bob", 40_000, 4_000, False))

    def test_long_pays_short_receives(self):
        s = self._two_sided()
        ra = step(s, _close("alice", now=DAY), CFG)
        assert ra.accepted
        assert ra.effect.amount_out == 4_800
        rb = step(ra.state, _close("bob", now=DAY), CFG)
        assert rb.accepted
        assert rb.effect.amount_out == 4_800
        assert rb.state.pool_balance == 10_000 + 1_200 - 800

    def test_funding_equal_per_unit(self):
        s = self._two_sided()
        a_paid = 6_000 - step(s, _close("alice", now=DAY), CFG).effect.amount_out
        b_received = step(s, _close("bob", now=DAY), CFG).effect.amount_out - 4_000
        assert a_paid * 40_000 == b_received * 60_000

    def test_close_without_elapsed_time_has_no_funding(self):
        s = self._two_sided()
        assert step(s, _close("alice"), CFG).effect.amount_out == 6_000


# ---------------------------------------------------------------------------
# liquidate
# ---------------------------------------------------------------------------

class TestLiquidate:
    def test_no_position(self):
        assert step(initial_state(), _liquidate(), CFG).rejection == "no_position"

    def test_healthy(self):
        s = _ok(initial_state(), _open())
        assert step(s, _liquidate(), CFG).rejection == "position_healthy"

    def test_boundary_is_healthy(self):
        s = _ok(initial_state(), _open())
        assert step(s, _liquidate(price=_price(2_850)), CFG).rejection == "position_healthy"

    def test_liquidation_splits_remaining_margin(self):
        s = _ok(initial_state(), _open())
        r = step(s, _liquidate(price=_price(2_849)), CFG)
        assert r.accepted
        e = r.effect
        assert e.event == Event.POSITION_LIQUIDATED
        assert e.caller == "keeper"
        assert e.remaining_margin == 1_490
        assert e.keeper_fee == 300
        assert e.insurance_credit == 1_190
        assert e.keeper_fee + e.insurance_credit == e.remaining_margin
        assert e.pool_delta == 1_510
        assert e.bad_debt == 0
        assert r.state.insurance_fund == 1_190
        assert r.state.pool_balance == 1_510
        assert r.state.positions == {}
        assert r.state.long_open_interest == 0
        assert r.state.collateral_locked == 0

    def test_bad_debt(self):
        s = _ok(initial_state(), _open())
        r = step(s, _liquidate(price=_price(2_550)), CFG)
        assert r.accepted
        e = r.effect
        assert e.remaining_margin == 0
        assert e.keeper_fee == 0
        assert e.insurance_credit == 0
        assert e.bad_debt == 1_500
        assert r.state.pool_balance == 3_000
        assert r.state.short_open_interest == 0
        assert r.state.positions == {}

    def test_funding_driven_liquidation(self):
        s = _ok(initial_state(), _open("alice", 30_000, 3_000, True))
        # Unopposed long skew of 30_000 accrues 3% a day; 2 days costs 1_800.
        r = step(s, _liquidate(now=2 * DAY), CFG)
        assert r.accepted
        assert r.effect.remaining_margin == 1_200
        assert r.effect.keeper_fee == 300

    def test_second_liquidation_sees_no_position(self):
        s = _ok(initial_state(), _open())
        s = _ok(s, _liquidate(caller="k1", price=_price(2_849)))
        assert step(s, _liquidate(caller="k2", price=_price(2_849)), CFG).rejection == "no_position"


# ---------------------------------------------------------------------------
# pool
# ---------------------------------------------------------------------------

class TestPool:
    def test_deposit(self):
        r = step(initial_state(), _deposit(1_000), CFG)
        assert r.accepted
        assert r.state.pool_balance == 1_000
        assert r.effect.event == Event.LIQUIDITY_DEPOSITED
        assert r.effect.amount_in == 1_000

    def test_deposit_zero(self):
        assert step(initial_state(), _deposit(0), CFG).rejection == "zero_amount"

    def test_withdraw(self):
        r = step(_with_pool(1_000), ActionParams(action=Action.WITHDRAW_LIQUIDITY, caller="lp", amount=400), CFG)
        assert r.accepted
        assert r.state.pool_balance == 600
        assert r.effect.amount_out == 400

    def test_withdraw_all(self):
        r = step(_with_pool(1_000), ActionParams(action=Action.WITHDRAW_LIQUIDITY, caller="lp", amount=1_000), CFG)
        assert r.state.pool_balance == 0

    def test_withdraw_too_much(self):
        r = step(_with_pool(1_000), ActionParams(action=Action.WITHDRAW_LIQUIDITY, caller="lp", amount=1_001), CFG)
        assert r.rejection == "insufficient_pool_liquidity"

    def test_withdraw_zero(self):
        r = step(_with_pool(1_000), ActionParams(action=Action.WITHDRAW_LIQUIDITY, caller="lp", amount=0), CFG)
        assert r.rejection == "zero_amount"

    def test_withdraw_ignores_open_profit_exposure(self):
        # No reservation against open trader profit.
        s = _ok(_with_pool(3_000), _open())
        r = step(s, ActionParams(action=Action.WITHDRAW_LIQUIDITY, caller="lp", amount=3_000), CFG)
        assert r.accepted
        assert step(r.state, _close(price=_price(3_300)), CFG).rejection == "insufficient_pool_liquidity"

    def test_deposit_insurance(self):
        r = step(initial_state(), ActionParams(action=Action.DEPOSIT_INSURANCE, caller="dao", amount=50), CFG)
        assert r.state.insurance_fund == 50
        assert r.effect.event == Event.INSURANCE_DEPOSITED


# ---------------------------------------------------------------------------
# advance_funding
# ---------------------------------------------------------------------------

class TestAdvanceFunding:
    def test_accrues(self):
        s = _ok(initial_state(), _open("alice", 30_000, 3_000, True))
        r = step(s, ActionParams(action=Action.ADVANCE_FUNDING, now=DAY), CFG)
        assert r.accepted
        assert r.effect.event == Event.FUNDING_ADVANCED
        assert r.effect.funding_index == 3 * 10**16
        assert r.effect.funding_rate == 3 * 10**16

    def test_idempotent(self):
        s = _ok(initial_state(), _open("alice", 30_000, 3_000, True))
        s1 = _ok(s, ActionParams(action=Action.ADVANCE_FUNDING, now=DAY))
        s2 = _ok(s1, ActionParams(action=Action.ADVANCE_FUNDING, now=DAY))
        assert s2 == s1

    def test_clock_regression(self):
        r = step(initial_state(now=10), ActionParams(action=Action.ADVANCE_FUNDING, now=9), CFG)
        assert r.rejection == "clock_regression"


# ---------------------------------------------------------------------------
# parameter domains + invariants
# ---------------------------------------------------------------------------

class TestParamDomain:
    def test_empty_trader(self):
        assert step(initial_state(), _open(trader=""), CFG).rejection == "param_domain:trader"

    def test_bool_is_not_int(self):
        r = step(initial_state(), _open(size=True), CFG)
        assert r.rejection == "param_domain:size_quote"

    def test_negative_now(self):
        assert step(initial_state(), _open(now=-1), CFG).rejection == "param_domain:now"

    def test_amount_overflow(self):
        assert step(initial_state(), _deposit(10**40), CFG).rejection == "param_domain:amount"

    @pytest.mark.parametrize(
        "params",
        [
            _liquidate(caller=""),
            ActionParams(action=Action.DEPOSIT_LIQUIDITY, amount=1),
            ActionParams(action=Action.WITHDRAW_LIQUIDITY, amount=1),
            ActionParams(action=Action.DEPOSIT_INSURANCE, caller=7, amount=1),
        ],
    )
    def test_missing_caller(self, params):
        s = _ok(initial_state(), _open())
        assert step(s, params, CFG).rejection == "param_domain:caller"

    def test_caller_not_needed_for_close(self):
        s = _ok(initial_state(), _open())
        assert step(s, _close(), CFG).accepted

    def test_default_config(self):
        assert step(initial_state(), _open()).accepted


class TestInvariantRejection:
    def test_corrupt_state_rejected(self):
        bad = replace(initial_state(), long_open_interest=5)
        r = step(bad, _deposit(1), CFG)
        assert not r.accepted
        assert r.rejection.startswith("invariant:")
        assert "inv_long_oi_matches_positions" in r.rejection


# ---------------------------------------------------------------------------
# step_or_raise
# ---------------------------------------------------------------------------

class TestStepOrRaise:
    def test_accepted(self):
        r = step_or_raise(initial_state(), _open(), CFG)
        assert r.accepted

    @pytest.mark.parametrize(
        "state_fn,params,exc",
        [
            (initial_state, _open(size=0), ZeroSize),
            (initial_state, _open(collateral=0), ZeroAmount),
            (initial_state, _open(size=30_001), ExceedsMaxLeverage),
            (initial_state, _close(), NoPosition),
            (initial_state, _open(trader=""), PerpOverflowError),
            (lambda: initial_state(now=5), _open(now=1), ClockRegression),
        ],
    )
    def test_validation_and_state_errors(self, state_fn, params, exc):
        with pytest.raises(exc):
            step_or_raise(state_fn(), params, CFG)

    def test_duplicate(self):
        s = _ok(initial_state(), _open())
        with pytest.raises(DuplicatePosition):
            step_or_raise(s, _open(), CFG)

    def test_healthy(self):
        s = _ok(initial_state(), _open())
        with pytest.raises(PositionHealthy):
            step_or_raise(s, _liquidate(), CFG)

    def test_liquidity(self):
        s = _ok(initial_state(), _open())
        with pytest.raises(InsufficientPoolLiquidity):
            step_or_raise(s, _close(price=_price(3_300)), CFG)

    def test_invariant(self):
        bad = replace(initial_state(), pool_balance=-5)
        with pytest.raises(PerpInvariantError) as exc_info:
            step_or_raise(bad, _deposit(1), CFG)
        assert exc_info.value.violations == ["inv_pool_nonneg"]
