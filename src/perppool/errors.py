"""Exception types for the perppool ledger.

The pure engine reports rejections as ``StepResult.rejection`` codes;
``step_or_raise()`` in ``engine.py`` and the ``PerpMarket`` shell translate
those codes into the exceptions below via ``error_for_rejection()``.

Taxonomy:
- validation errors: caller-correctable, detected before any mutation;
- liquidity errors: detected once the payout is known, whole step discarded;
- state errors: the position (or clock) is not in a state that allows the action.
"""

from __future__ import annotations


class PerpPoolError(Exception):
    """Base class for every ledger rejection."""

    code: str = "error"


# -- Validation --------------------------------------------------------------

class PerpValidationError(PerpPoolError):
    """Raised when request parameters are invalid."""


class ZeroAmount(PerpValidationError):
    code = "zero_amount"


class ZeroSize(PerpValidationError):
    code = "zero_size"


class DuplicatePosition(PerpValidationError):
    code = "duplicate_position"


class ExceedsMaxLeverage(PerpValidationError):
    code = "exceeds_max_leverage"


class InvalidPrice(PerpValidationError):
    code = "invalid_price"


class PerpOverflowError(PerpValidationError):
    """Raised when a parameter exceeds its domain bounds."""

    code = "param_domain"


# -- Liquidity ---------------------------------------------------------------

class PerpLiquidityError(PerpPoolError):
    """Raised when the pool cannot fund the required movement."""


class InsufficientPoolLiquidity(PerpLiquidityError):
    code = "insufficient_pool_liquidity"


# -- State -------------------------------------------------------------------

class PerpStateError(PerpPoolError):
    """Raised when the ledger state does not permit the action."""


class NoPosition(PerpStateError):
    code = "no_position"


class PositionHealthy(PerpStateError):
    code = "position_healthy"


class ClockRegression(PerpStateError):
    code = "clock_regression"


class PerpInvariantError(PerpPoolError):
    """Raised when a post-state violates one or more invariants."""

    code = "invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


_BY_CODE: dict[str, type[PerpPoolError]] = {
    cls.code: cls
    for cls in (
        ZeroAmount,
        ZeroSize,
        DuplicatePosition,
        ExceedsMaxLeverage,
        InvalidPrice,
        InsufficientPoolLiquidity,
        NoPosition,
        PositionHealthy,
        ClockRegression,
    )
}


def error_for_rejection(reason: str) -> PerpPoolError:
    """Build the exception matching a ``StepResult.rejection`` code."""
    if reason.startswith("param_domain:"):
        return PerpOverflowError(reason)
    if reason.startswith("invariant:"):
        return PerpInvariantError(reason.removeprefix("invariant:").split(","))
    cls = _BY_CODE.get(reason)
    if cls is None:
        return PerpPoolError(reason)
    return cls(reason)
