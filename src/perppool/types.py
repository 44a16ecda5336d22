"""Data types for the `perppool` ledger.

All types are frozen dataclasses (immutable).

Units/conventions:
- `*_e8` prices are quote-per-base scaled by 1e8.
- `*_bps` ratios are basis points (1/10_000).
- `size_quote` and open interest are integer quote units.
- `collateral`, pool and insurance balances are integer collateral units;
  `MarketConfig.collateral_scale` quote units make one collateral unit.
- funding index and rate are signed ints scaled by 1e18.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from types import MappingProxyType
from typing import Mapping


@unique
class Action(Enum):
    """One member per ledger operation."""
    OPEN = "open"
    CLOSE = "close"
    LIQUIDATE = "liquidate"
    DEPOSIT_LIQUIDITY = "deposit_liquidity"
    WITHDRAW_LIQUIDITY = "withdraw_liquidity"
    DEPOSIT_INSURANCE = "deposit_insurance"
    ADVANCE_FUNDING = "advance_funding"


@unique
class Event(Enum):
    """One member per emitted event type."""
    POSITION_OPENED = "PositionOpened"
    POSITION_CLOSED = "PositionClosed"
    POSITION_LIQUIDATED = "PositionLiquidated"
    LIQUIDITY_DEPOSITED = "LiquidityDeposited"
    LIQUIDITY_WITHDRAWN = "LiquidityWithdrawn"
    INSURANCE_DEPOSITED = "InsuranceDeposited"
    FUNDING_ADVANCED = "FundingAdvanced"


@unique
class PositionHealth(Enum):
    """Liquidation state machine states."""
    HEALTHY = "healthy"
    LIQUIDATABLE = "liquidatable"
    CLOSED = "closed"


@dataclass(frozen=True)
class Position:
    """One open position. Structurally unchanged between open and close."""

    size_quote: int
    collateral: int
    entry_price_e8: int
    is_long: bool
    entry_funding_index: int

    def __post_init__(self) -> None:
        if self.size_quote <= 0:
            raise ValueError(f"size_quote must be positive: {self.size_quote}")
        if self.collateral <= 0:
            raise ValueError(f"collateral must be positive: {self.collateral}")
        if self.entry_price_e8 <= 0:
            raise ValueError(f"entry_price_e8 must be positive: {self.entry_price_e8}")


@dataclass(frozen=True)
class MarketState:
    """Complete state of one market: funding accumulator, open interest, pool and positions."""

    # Funding accumulator
    cumulative_funding_per_unit: int = 0
    last_funding_timestamp: int = 0

    # Open interest (quote units)
    long_open_interest: int = 0
    short_open_interest: int = 0

    # Counterparty capital (collateral units)
    pool_balance: int = 0
    insurance_fund: int = 0
    collateral_locked: int = 0

    # trader -> Position; read-only view, replaced copy-on-write by updates
    positions: Mapping[str, Position] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.positions, MappingProxyType):
            object.__setattr__(self, "positions", MappingProxyType(dict(self.positions)))


@dataclass(frozen=True)
class ActionParams:
    """Parameters for an action. Unused fields default to 0/False/""."""

    action: Action
    now: int = 0                  # all actions that touch funding
    price_e8: int = 0             # open / close / liquidate
    trader: str = ""              # open / close / liquidate
    caller: str = ""              # liquidate (keeper) / pool actions (provider)
    size_quote: int = 0           # open
    collateral: int = 0           # open
    is_long: bool = False         # open
    amount: int = 0               # deposit/withdraw liquidity, deposit insurance


@dataclass(frozen=True)
class Effect:
    """Post-state observables and value movements of a successful step.

    `amount_in` is collected from `account`; `amount_out` is paid to
    `account`; `keeper_fee` is paid to `caller`.
    """

    event: Event
    account: str = ""
    caller: str = ""
    amount_in: int = 0
    amount_out: int = 0
    keeper_fee: int = 0
    insurance_credit: int = 0
    pool_delta: int = 0
    bad_debt: int = 0
    remaining_margin: int = 0
    funding_index: int = 0
    funding_rate: int = 0
    long_open_interest: int = 0
    short_open_interest: int = 0
    pool_after: int = 0
    insurance_after: int = 0


@dataclass(frozen=True)
class StepResult:
    """Result of a single engine step."""

    accepted: bool
    state: MarketState | None = None
    effect: Effect | None = None
    rejection: str | None = None
