"""
Price source collaborator.

The ledger reads one price per operation through `PriceSource.get_price()`
and does no staleness checking of its own: a source either returns a
currently valid price (positive, scaled by 1e8) or raises.

`StaticPriceSource` is the in-memory implementation used by tests and
simulations.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PriceSource(Protocol):
    def get_price(self) -> int:
        """Current reference price, quote-per-base scaled by 1e8."""
        ...


class StaticPriceSource:
    """Price source returning whatever price was last set."""

    def __init__(self, price_e8: int) -> None:
        self._price_e8 = 0
        self.set_price(price_e8)

    def set_price(self, price_e8: int) -> None:
        if not isinstance(price_e8, int) or isinstance(price_e8, bool):
            raise TypeError("price_e8 must be an int")
        if price_e8 <= 0:
            raise ValueError(f"price_e8 must be positive: {price_e8}")
        self._price_e8 = price_e8

    def get_price(self) -> int:
        return self._price_e8

    def __repr__(self) -> str:
        return f"StaticPriceSource({self._price_e8})"
