"""Margin calculator and liquidation health.

Derives PnL, pending funding and remaining margin from a position, the
current price and the live funding index. Everything here is read-only.

Health is a strict comparison: ``remaining < maintenance`` is LIQUIDATABLE,
so a position sitting exactly on its maintenance margin is still HEALTHY.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import MarketConfig
from .math import margin_requirement, pnl_quote, remaining_margin as _remaining_margin, signed_funding
from .types import Position, PositionHealth


def unrealized_pnl(position: Position, price_e8: int) -> int:
    """Signed PnL in quote units at *price_e8*."""
    return pnl_quote(position.size_quote, position.is_long, position.entry_price_e8, price_e8)


def pending_funding(position: Position, live_index: int) -> int:
    """Funding credited to the position (negative when it pays)."""
    return signed_funding(position.size_quote, position.is_long, position.entry_funding_index, live_index)


def remaining_margin(position: Position, price_e8: int, live_index: int, config: MarketConfig) -> int:
    """Collateral + PnL + funding in collateral units, never below zero."""
    return _remaining_margin(
        position.collateral,
        unrealized_pnl(position, price_e8),
        pending_funding(position, live_index),
        config.collateral_scale,
    )


def maintenance_margin(position: Position, config: MarketConfig) -> int:
    """Maintenance requirement in collateral units."""
    return margin_requirement(position.size_quote, config.maintenance_margin_bps, config.collateral_scale)


def is_liquidatable(position: Position, price_e8: int, live_index: int, config: MarketConfig) -> bool:
    return remaining_margin(position, price_e8, live_index, config) < maintenance_margin(position, config)


def position_health(
    position: Position | None, price_e8: int, live_index: int, config: MarketConfig,
) -> PositionHealth:
    if position is None:
        return PositionHealth.CLOSED
    if is_liquidatable(position, price_e8, live_index, config):
        return PositionHealth.LIQUIDATABLE
    return PositionHealth.HEALTHY


@dataclass(frozen=True)
class MarginSnapshot:
    """All derived margin figures of one position at one instant."""

    unrealized_pnl: int
    pending_funding: int
    remaining_margin: int
    maintenance_margin: int
    health: PositionHealth


def margin_snapshot(position: Position, price_e8: int, live_index: int, config: MarketConfig) -> MarginSnapshot:
    remaining = remaining_margin(position, price_e8, live_index, config)
    maint = maintenance_margin(position, config)
    return MarginSnapshot(
        unrealized_pnl=unrealized_pnl(position, price_e8),
        pending_funding=pending_funding(position, live_index),
        remaining_margin=remaining,
        maintenance_margin=maint,
        health=PositionHealth.LIQUIDATABLE if remaining < maint else PositionHealth.HEALTHY,
    )
