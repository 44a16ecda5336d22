"""Settlement of a position being closed or liquidated.

Guards, updates and effects all need the same figures (payout, keeper fee,
pool movement); `settle_close()` and `settle_liquidation()` compute them once
from the PRE-state, with the funding accumulator advanced to ``now``.

Value flow when a position leaves the book (collateral units):
- close:      collateral = payout + pool_delta      (pool_delta < 0 is a pool-funded profit)
- liquidate:  collateral = keeper_fee + insurance_credit + pool_delta
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import MarketConfig
from .funding import advance
from .margin import is_liquidatable, pending_funding, remaining_margin, unrealized_pnl
from .math import keeper_fee, to_collateral_units
from .types import MarketState, Position


@dataclass(frozen=True)
class Settlement:
    advanced: MarketState
    position: Position
    remaining_margin: int
    payout: int = 0
    keeper_fee: int = 0
    insurance_credit: int = 0
    pool_delta: int = 0
    bad_debt: int = 0
    liquidatable: bool = False


def _unclamped_margin(position: Position, price_e8: int, live_index: int, config: MarketConfig) -> int:
    pnl = unrealized_pnl(position, price_e8)
    funding = pending_funding(position, live_index)
    return position.collateral + to_collateral_units(pnl + funding, config.collateral_scale)


def settle_close(
    state: MarketState, config: MarketConfig, trader: str, now: int, price_e8: int,
) -> Settlement:
    """Figures for closing *trader*'s position. Raises KeyError if there is none."""
    advanced = advance(state, config, now)
    position = advanced.positions[trader]
    remaining = remaining_margin(position, price_e8, advanced.cumulative_funding_per_unit, config)
    return Settlement(
        advanced=advanced,
        position=position,
        remaining_margin=remaining,
        payout=remaining,
        pool_delta=position.collateral - remaining,
    )


def settle_liquidation(
    state: MarketState, config: MarketConfig, trader: str, now: int, price_e8: int,
) -> Settlement:
    """Figures for liquidating *trader*'s position. Raises KeyError if there is none."""
    advanced = advance(state, config, now)
    position = advanced.positions[trader]
    live_index = advanced.cumulative_funding_per_unit
    remaining = remaining_margin(position, price_e8, live_index, config)
    fee = keeper_fee(position.size_quote, config.liquidation_fee_bps, config.collateral_scale, remaining)
    unclamped = _unclamped_margin(position, price_e8, live_index, config)
    return Settlement(
        advanced=advanced,
        position=position,
        remaining_margin=remaining,
        keeper_fee=fee,
        insurance_credit=remaining - fee,
        pool_delta=position.collateral - remaining,
        bad_debt=-unclamped if unclamped < 0 else 0,
        liquidatable=is_liquidatable(position, price_e8, live_index, config),
    )
