"""`perppool`: funding-index perpetual ledger with a pooled counterparty.

This package implements the accounting core of a leveraged perpetual market:
- a global, O(1)-updatable funding index driven by open-interest skew,
- one isolated position per trader, opened against a leverage cap,
- margin, PnL and pending-funding derivation,
- permissionless liquidation with keeper fee and insurance routing,
- a counterparty pool that funds trader profits and absorbs losses.

Design:
- deterministic, integer-only transitions (fixed-point, truncating division),
- immutable state (frozen dataclasses),
- fail-closed guards and invariant checks; every rejection is a full rollback.

Public API:
- `initial_state() -> MarketState`
- `step(state, params, config) -> StepResult`
- `step_or_raise(state, params, config) -> StepResult` (raises on rejection)
- `PerpMarket`: lock-serialized stateful shell with price/transfer collaborators
"""

from .balances import BalanceBook, InsufficientBalance, ValueTransfer
from .config import MarketConfig, load_config
from .engine import step, step_or_raise
from .errors import (
    ClockRegression,
    DuplicatePosition,
    ExceedsMaxLeverage,
    InsufficientPoolLiquidity,
    InvalidPrice,
    NoPosition,
    PerpInvariantError,
    PerpLiquidityError,
    PerpOverflowError,
    PerpPoolError,
    PerpStateError,
    PerpValidationError,
    PositionHealthy,
    ZeroAmount,
    ZeroSize,
)
from .market import PerpMarket, SystemClock
from .oracle import PriceSource, StaticPriceSource
from .state import initial_state, state_from_dict, state_to_dict
from .types import (
    Action,
    ActionParams,
    Effect,
    Event,
    MarketState,
    Position,
    PositionHealth,
    StepResult,
)

__all__ = [
    "step",
    "step_or_raise",
    "initial_state",
    "state_from_dict",
    "state_to_dict",
    "PerpMarket",
    "SystemClock",
    "MarketConfig",
    "load_config",
    "PriceSource",
    "StaticPriceSource",
    "ValueTransfer",
    "BalanceBook",
    "Action",
    "ActionParams",
    "Effect",
    "Event",
    "MarketState",
    "Position",
    "PositionHealth",
    "StepResult",
    "PerpPoolError",
    "PerpValidationError",
    "PerpLiquidityError",
    "PerpStateError",
    "PerpInvariantError",
    "PerpOverflowError",
    "ZeroAmount",
    "ZeroSize",
    "DuplicatePosition",
    "ExceedsMaxLeverage",
    "InvalidPrice",
    "InsufficientPoolLiquidity",
    "InsufficientBalance",
    "NoPosition",
    "PositionHealthy",
    "ClockRegression",
]
