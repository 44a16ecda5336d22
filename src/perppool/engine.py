"""Dispatch-table engine for `perppool`.

``step(state, params, config)`` is the single entry point. It:

1. Validates parameter domains.
2. Dispatches to the correct guard / update / effect functions.
3. Checks all invariants on the post-state.
4. Returns a ``StepResult`` (accepted or rejected with reason).

A rejected step leaves nothing behind: the caller keeps the PRE-state.
"""

from __future__ import annotations

from typing import Callable

from .config import MarketConfig
from .effects import (
    effect_advance_funding,
    effect_close,
    effect_deposit_insurance,
    effect_deposit_liquidity,
    effect_liquidate,
    effect_open,
    effect_withdraw_liquidity,
)
from .errors import error_for_rejection
from .guards import (
    guard_advance_funding,
    guard_close,
    guard_deposit_insurance,
    guard_deposit_liquidity,
    guard_liquidate,
    guard_open,
    guard_withdraw_liquidity,
)
from .invariants import check_all
from .math import MAX_AMOUNT, MAX_TIMESTAMP
from .types import Action, ActionParams, Effect, MarketState, StepResult
from .updates import (
    apply_advance_funding,
    apply_close,
    apply_deposit_insurance,
    apply_deposit_liquidity,
    apply_liquidate,
    apply_open,
    apply_withdraw_liquidity,
)

GuardFn = Callable[[MarketState, ActionParams, MarketConfig], str | None]
UpdateFn = Callable[[MarketState, ActionParams, MarketConfig], MarketState]
EffectFn = Callable[[MarketState, MarketState, ActionParams, MarketConfig], Effect]

_DISPATCH: dict[Action, tuple[GuardFn, UpdateFn, EffectFn]] = {
    Action.OPEN: (guard_open, apply_open, effect_open),
    Action.CLOSE: (guard_close, apply_close, effect_close),
    Action.LIQUIDATE: (guard_liquidate, apply_liquidate, effect_liquidate),
    Action.DEPOSIT_LIQUIDITY: (
        guard_deposit_liquidity, apply_deposit_liquidity, effect_deposit_liquidity,
    ),
    Action.WITHDRAW_LIQUIDITY: (
        guard_withdraw_liquidity, apply_withdraw_liquidity, effect_withdraw_liquidity,
    ),
    Action.DEPOSIT_INSURANCE: (
        guard_deposit_insurance, apply_deposit_insurance, effect_deposit_insurance,
    ),
    Action.ADVANCE_FUNDING: (
        guard_advance_funding, apply_advance_funding, effect_advance_funding,
    ),
}

# -- Parameter domain bounds -------------------------------------------------

_INT_FIELDS: tuple[str, ...] = ("now", "price_e8", "size_quote", "collateral", "amount")

# Per-action upper bounds: list of (field_name, max_val). Lower bounds are
# business rules (zero_size, zero_amount, invalid_price) enforced by guards.
_PARAM_BOUNDS: dict[Action, list[tuple[str, int]]] = {
    Action.OPEN: [("price_e8", MAX_AMOUNT), ("size_quote", MAX_AMOUNT), ("collateral", MAX_AMOUNT)],
    Action.CLOSE: [("price_e8", MAX_AMOUNT)],
    Action.LIQUIDATE: [("price_e8", MAX_AMOUNT)],
    Action.DEPOSIT_LIQUIDITY: [("amount", MAX_AMOUNT)],
    Action.WITHDRAW_LIQUIDITY: [("amount", MAX_AMOUNT)],
    Action.DEPOSIT_INSURANCE: [("amount", MAX_AMOUNT)],
    Action.ADVANCE_FUNDING: [],
}

_TRADER_ACTIONS = frozenset({Action.OPEN, Action.CLOSE, Action.LIQUIDATE})
_CALLER_ACTIONS = frozenset({
    Action.LIQUIDATE, Action.DEPOSIT_LIQUIDITY, Action.WITHDRAW_LIQUIDITY, Action.DEPOSIT_INSURANCE,
})


def _validate_params(params: ActionParams) -> str | None:
    """Check parameter types and domain bounds. Returns rejection reason or None."""
    for field in _INT_FIELDS:
        val = getattr(params, field)
        if not isinstance(val, int) or isinstance(val, bool):
            return f"param_domain:{field}"
    if not isinstance(params.is_long, bool):
        return "param_domain:is_long"
    if params.now < 0 or params.now > MAX_TIMESTAMP:
        return "param_domain:now"
    if params.action in _TRADER_ACTIONS and (not isinstance(params.trader, str) or not params.trader):
        return "param_domain:trader"
    if params.action in _CALLER_ACTIONS and (not isinstance(params.caller, str) or not params.caller):
        return "param_domain:caller"
    for field, hi in _PARAM_BOUNDS.get(params.action, []):
        if getattr(params, field) > hi:
            return f"param_domain:{field}"
    return None


def step(state: MarketState, params: ActionParams, config: MarketConfig | None = None) -> StepResult:
    """Execute one action against the given state.

    Returns ``StepResult`` with ``accepted=True`` on success,
    or ``accepted=False`` with a ``rejection`` reason string.
    """
    cfg = config if config is not None else MarketConfig()

    entry = _DISPATCH.get(params.action)
    if entry is None:
        return StepResult(accepted=False, rejection=f"unknown_action:{params.action}")

    domain_err = _validate_params(params)
    if domain_err is not None:
        return StepResult(accepted=False, rejection=domain_err)

    guard_fn, update_fn, effect_fn = entry

    rejection = guard_fn(state, params, cfg)
    if rejection is not None:
        return StepResult(accepted=False, rejection=rejection)

    new_state = update_fn(state, params, cfg)

    violations = check_all(new_state)
    if violations:
        return StepResult(
            accepted=False,
            rejection=f"invariant:{','.join(violations)}",
        )

    effect = effect_fn(state, new_state, params, cfg)
    return StepResult(accepted=True, state=new_state, effect=effect)


def step_or_raise(state: MarketState, params: ActionParams, config: MarketConfig | None = None) -> StepResult:
    """Like ``step()`` but raises on rejection instead of returning a result.

    Raises:
        PerpOverflowError: Parameter outside its domain bounds.
        PerpValidationError / PerpLiquidityError / PerpStateError subclass:
            the guard's rejection code (see ``errors.py``).
        PerpInvariantError: Post-state violates one or more invariants.
    """
    result = step(state, params, config)
    if result.accepted:
        return result
    raise error_for_rejection(result.rejection or "")
