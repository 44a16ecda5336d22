"""
Imperative shell around the pure `perppool` engine.

`PerpMarket` owns the single current `MarketState` of one market and
serializes every operation behind one lock, so `advance()` calls are
strictly ordered and no operation observes a half-applied state. Per
operation it reads the clock and the price once, runs `engine.step()`, and
only then commits:

1. collect incoming value (collateral / liquidity) through the transfer
   collaborator; if that fails the new state is discarded,
2. swap in the new state and append the effect to the event log,
3. pay outgoing value (payout / withdrawal / keeper fee); if that fails
   the previous state and event log are restored and the error propagates.

Liquidation is permissionless: any caller may invoke it. Concurrent callers
are ordered by the lock; the first succeeds and the rest see `NoPosition`.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from .balances import ValueTransfer
from .config import MarketConfig
from .engine import step
from .errors import InvalidPrice, NoPosition, error_for_rejection
from .funding import current_rate, preview_index
from .margin import MarginSnapshot, margin_snapshot, position_health, pending_funding, remaining_margin, unrealized_pnl
from .oracle import PriceSource
from .state import initial_state
from .types import Action, ActionParams, Effect, MarketState, Position, PositionHealth

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


class SystemClock:
    """Wall-clock seconds that never step backwards.

    When the wall clock is stepped back, returns the last value it returned
    until time catches up.
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        now = int(time.time())
        with self._lock:
            if now > self._last:
                self._last = now
            return self._last


class PerpMarket:
    """One perpetual market: funding accumulator, position ledger and counterparty pool."""

    def __init__(
        self,
        price_source: PriceSource,
        *,
        config: Optional[MarketConfig] = None,
        transfers: Optional[ValueTransfer] = None,
        clock: Optional[Clock] = None,
        state: Optional[MarketState] = None,
    ) -> None:
        self._config = config if config is not None else MarketConfig()
        self._prices = price_source
        self._transfers = transfers
        self._clock = clock if clock is not None else SystemClock()
        self._state = state if state is not None else initial_state(self._clock())
        self._events: List[Effect] = []
        self._lock = threading.Lock()

    # -- Properties ----------------------------------------------------------

    @property
    def config(self) -> MarketConfig:
        return self._config

    @property
    def state(self) -> MarketState:
        with self._lock:
            return self._state

    @property
    def events(self) -> tuple[Effect, ...]:
        with self._lock:
            return tuple(self._events)

    def snapshot(self) -> MarketState:
        return self.state

    # -- Internals -----------------------------------------------------------

    def _price(self) -> int:
        price = self._prices.get_price()
        if not isinstance(price, int) or isinstance(price, bool) or price <= 0:
            raise InvalidPrice(f"price source returned {price!r}")
        return price

    def _execute(self, params: ActionParams) -> Effect:
        """Run one step and commit it. Caller must hold the lock."""
        result = step(self._state, params, self._config)
        if not result.accepted:
            reason = result.rejection or ""
            if reason == "insufficient_pool_liquidity":
                logger.warning(
                    "%s rejected: pool %s cannot fund it (account=%s)",
                    params.action.value, self._state.pool_balance, params.trader or params.caller,
                )
            else:
                logger.debug("%s rejected: %s", params.action.value, reason)
            raise error_for_rejection(reason)

        assert result.state is not None and result.effect is not None
        effect = result.effect
        if self._transfers is not None and effect.amount_in:
            self._transfers.collect(effect.account, effect.amount_in)

        prev = self._state
        self._state = result.state
        self._events.append(effect)

        if self._transfers is not None:
            try:
                if effect.amount_out:
                    self._transfers.pay(effect.account, effect.amount_out)
                if effect.keeper_fee:
                    self._transfers.pay(effect.caller, effect.keeper_fee)
            except BaseException:
                # At most one payout per effect, so nothing was paid yet.
                self._state = prev
                self._events.pop()
                raise
        return effect

    def _live_position(self, trader: str) -> tuple[Position, int, int]:
        """Position, price and live index for a read. Caller must hold the lock."""
        position = self._state.positions.get(trader)
        if position is None:
            raise NoPosition(f"no open position for {trader!r}")
        return position, self._price(), preview_index(self._state, self._config, self._clock())

    # -- Position ledger -----------------------------------------------------

    def open(self, trader: str, size_quote: int, collateral: int, is_long: bool) -> Position:
        """Open *trader*'s position at the current price."""
        with self._lock:
            params = ActionParams(
                action=Action.OPEN,
                now=self._clock(),
                price_e8=self._price(),
                trader=trader,
                size_quote=size_quote,
                collateral=collateral,
                is_long=is_long,
            )
            self._execute(params)
            position = self._state.positions[trader]
            logger.info(
                "opened %s %s size=%s collateral=%s entry=%s",
                trader, "long" if is_long else "short", size_quote, collateral, position.entry_price_e8,
            )
            return position

    def close(self, trader: str) -> int:
        """Close *trader*'s position and return the payout (collateral units)."""
        with self._lock:
            params = ActionParams(
                action=Action.CLOSE, now=self._clock(), price_e8=self._price(), trader=trader,
            )
            effect = self._execute(params)
            logger.info("closed %s payout=%s pool_delta=%s", trader, effect.amount_out, effect.pool_delta)
            return effect.amount_out

    # -- Liquidation ---------------------------------------------------------

    def liquidate(self, trader: str, caller: str) -> int:
        """Force-close an unsafe position; *caller* receives and the method returns the keeper fee."""
        with self._lock:
            params = ActionParams(
                action=Action.LIQUIDATE,
                now=self._clock(),
                price_e8=self._price(),
                trader=trader,
                caller=caller,
            )
            effect = self._execute(params)
            if effect.bad_debt:
                logger.warning(
                    "liquidated %s with bad debt %s (keeper=%s)", trader, effect.bad_debt, caller,
                )
            else:
                logger.info(
                    "liquidated %s keeper=%s fee=%s insurance=%s",
                    trader, caller, effect.keeper_fee, effect.insurance_credit,
                )
            return effect.keeper_fee

    def is_liquidatable(self, trader: str) -> bool:
        return self.health(trader) is PositionHealth.LIQUIDATABLE

    def health(self, trader: str) -> PositionHealth:
        with self._lock:
            position = self._state.positions.get(trader)
            if position is None:
                return PositionHealth.CLOSED
            live = preview_index(self._state, self._config, self._clock())
            return position_health(position, self._price(), live, self._config)

    def liquidatable_traders(self) -> list[str]:
        """Trader ids whose positions can be liquidated right now, sorted."""
        with self._lock:
            if not self._state.positions:
                return []
            price = self._price()
            live = preview_index(self._state, self._config, self._clock())
            return sorted(
                trader
                for trader, position in self._state.positions.items()
                if position_health(position, price, live, self._config) is PositionHealth.LIQUIDATABLE
            )

    # -- Counterparty pool ---------------------------------------------------

    def deposit_liquidity(self, provider: str, amount: int) -> None:
        with self._lock:
            self._execute(ActionParams(
                action=Action.DEPOSIT_LIQUIDITY, now=self._clock(), caller=provider, amount=amount,
            ))
            logger.info("pool deposit %s by %s (pool=%s)", amount, provider, self._state.pool_balance)

    def withdraw_liquidity(self, provider: str, amount: int) -> None:
        with self._lock:
            self._execute(ActionParams(
                action=Action.WITHDRAW_LIQUIDITY, now=self._clock(), caller=provider, amount=amount,
            ))
            logger.info("pool withdrawal %s by %s (pool=%s)", amount, provider, self._state.pool_balance)

    def deposit_insurance(self, provider: str, amount: int) -> None:
        with self._lock:
            self._execute(ActionParams(
                action=Action.DEPOSIT_INSURANCE, now=self._clock(), caller=provider, amount=amount,
            ))
            logger.info("insurance deposit %s by %s", amount, provider)

    # -- Funding -------------------------------------------------------------

    def sync_funding(self) -> int:
        """Accrue funding up to now; returns the settled index."""
        with self._lock:
            self._execute(ActionParams(action=Action.ADVANCE_FUNDING, now=self._clock()))
            return self._state.cumulative_funding_per_unit

    def current_funding_rate(self) -> int:
        with self._lock:
            return current_rate(self._state, self._config)

    def funding_index(self) -> int:
        """Live index (settled value plus unaccrued portion), without mutating state."""
        with self._lock:
            return preview_index(self._state, self._config, self._clock())

    # -- Views ---------------------------------------------------------------

    def get_position(self, trader: str) -> Optional[Position]:
        with self._lock:
            return self._state.positions.get(trader)

    def get_unrealized_pnl(self, trader: str) -> int:
        with self._lock:
            position, price, _live = self._live_position(trader)
            return unrealized_pnl(position, price)

    def get_pending_funding(self, trader: str) -> int:
        with self._lock:
            position, _price, live = self._live_position(trader)
            return pending_funding(position, live)

    def get_remaining_margin(self, trader: str) -> int:
        with self._lock:
            position, price, live = self._live_position(trader)
            return remaining_margin(position, price, live, self._config)

    def get_margin_snapshot(self, trader: str) -> MarginSnapshot:
        with self._lock:
            position, price, live = self._live_position(trader)
            return margin_snapshot(position, price, live, self._config)

    def __repr__(self) -> str:
        s = self._state
        return (
            f"PerpMarket(positions={len(s.positions)}, long_oi={s.long_open_interest}, "
            f"short_oi={s.short_open_interest}, pool={s.pool_balance}, insurance={s.insurance_fund})"
        )
