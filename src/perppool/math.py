"""Pure arithmetic for the `perppool` ledger.

Every function is stateless and operates on plain Python ints.

Rounding is explicit: all divisions go through `tdiv()`, which truncates
toward zero (not Python's floor). Truncation is symmetric in sign, so it
favours neither the trader nor the pool on average, but it does not bias
toward the pool either. Tests pin this behaviour.
"""

from __future__ import annotations

# Fixed-point scales
SCALE: int = 10**18            # funding index / rate precision
PRICE_SCALE: int = 100_000_000  # 1e8, price source precision
BPS_SCALE: int = 10_000

# Parameter domain bounds
MAX_AMOUNT: int = 10**36
MAX_TIMESTAMP: int = 2**63 - 1


# -- Basic helpers -----------------------------------------------------------

def abs_val(x: int) -> int:
    """Absolute value of *x*."""
    return x if x >= 0 else -x


def tdiv(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero.

    ``tdiv(-7, 2) == -3`` whereas ``-7 // 2 == -4``.
    """
    if denominator <= 0:
        raise ValueError(f"denominator must be positive: {denominator}")
    q = abs_val(numerator) // denominator
    return q if numerator >= 0 else -q


# -- Funding helpers ---------------------------------------------------------

def funding_rate(long_oi: int, short_oi: int, skew_scale: int) -> int:
    """Signed funding rate per day, scaled by 1e18.

    Positive when longs dominate (longs pay shorts), negative when shorts
    dominate, zero when balanced.
    """
    return tdiv((long_oi - short_oi) * SCALE, skew_scale)


def accrued_index_delta(rate: int, elapsed: int, seconds_per_day: int) -> int:
    """Index growth over *elapsed* seconds at *rate*.

    Shared by settlement (`advance`) and the read-only preview so the two
    can never disagree.
    """
    if elapsed == 0:
        return 0
    return tdiv(rate * elapsed, seconds_per_day)


def funding_owed(size_quote: int, entry_index: int, live_index: int) -> int:
    """Unsigned-direction funding: ``size * (live - entry) / 1e18``.

    Positive means the index rose since entry (net-long skew dominated).
    """
    return tdiv(size_quote * (live_index - entry_index), SCALE)


def signed_funding(size_quote: int, is_long: bool, entry_index: int, live_index: int) -> int:
    """Funding credited to the position: longs pay a rising index, shorts receive it."""
    raw = funding_owed(size_quote, entry_index, live_index)
    return -raw if is_long else raw


# -- PnL helpers -------------------------------------------------------------

def pnl_quote(size_quote: int, is_long: bool, entry_price_e8: int, price_e8: int) -> int:
    """Signed PnL in quote units: ``size * (price - entry) / entry`` (sign flipped for shorts)."""
    move = price_e8 - entry_price_e8 if is_long else entry_price_e8 - price_e8
    return tdiv(size_quote * move, entry_price_e8)


# -- Margin helpers ----------------------------------------------------------

def to_collateral_units(quote_amount: int, collateral_scale: int) -> int:
    """Convert a signed quote amount to collateral units (truncated)."""
    return tdiv(quote_amount, collateral_scale)


def margin_requirement(size_quote: int, margin_bps: int, collateral_scale: int) -> int:
    """Margin in collateral units: ``size * bps / (10000 * collateral_scale)``."""
    return (size_quote * margin_bps) // (BPS_SCALE * collateral_scale)


def remaining_margin(
    collateral: int,
    pnl: int,
    funding: int,
    collateral_scale: int,
) -> int:
    """Collateral plus PnL plus funding, in collateral units, clamped at zero."""
    value = collateral + to_collateral_units(pnl + funding, collateral_scale)
    return value if value > 0 else 0


def max_size_for(collateral: int, leverage_cap: int, collateral_scale: int) -> int:
    """Largest size (quote units) the leverage cap allows for *collateral*."""
    return collateral * collateral_scale * leverage_cap


def keeper_fee(size_quote: int, liquidation_fee_bps: int, collateral_scale: int, remaining: int) -> int:
    """Keeper reward, capped at what is left of the position."""
    return min(margin_requirement(size_quote, liquidation_fee_bps, collateral_scale), remaining)
