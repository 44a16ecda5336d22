"""State construction and serialization for `perppool`.

`initial_state()` returns an empty market (no positions, zero pool).

Round-trip property (tested): `state_from_dict(state_to_dict(s)) == s` for all valid states.
"""

from __future__ import annotations

from typing import Any, Mapping

from .types import MarketState, Position

# Auto-derived from the dataclass field definitions (single source of truth).
STATE_VAR_NAMES: tuple[str, ...] = tuple(MarketState.__dataclass_fields__)
POSITION_FIELD_NAMES: tuple[str, ...] = tuple(Position.__dataclass_fields__)


def initial_state(now: int = 0) -> MarketState:
    """Return an empty market whose funding clock starts at *now*."""
    return MarketState(last_funding_timestamp=now)


def _position_to_dict(p: Position) -> dict[str, bool | int]:
    return {name: getattr(p, name) for name in POSITION_FIELD_NAMES}


def _position_from_dict(d: Mapping[str, Any]) -> Position:
    kwargs: dict[str, Any] = {}
    for name in POSITION_FIELD_NAMES:
        val = d[name]
        if name == "is_long":
            if not isinstance(val, bool):
                raise TypeError(f"position field {name!r} must be bool, got {type(val).__name__}")
        elif not isinstance(val, int) or isinstance(val, bool):
            raise TypeError(f"position field {name!r} must be int, got {type(val).__name__}")
        kwargs[name] = val if isinstance(val, bool) else int(val)
    return Position(**kwargs)


def state_to_dict(state: MarketState) -> dict[str, Any]:
    """Serialize a MarketState to a plain dict; positions are sorted by trader id."""
    out: dict[str, Any] = {}
    for name in STATE_VAR_NAMES:
        if name == "positions":
            out[name] = {
                trader: _position_to_dict(state.positions[trader])
                for trader in sorted(state.positions)
            }
        else:
            out[name] = getattr(state, name)
    return out


def state_from_dict(d: Mapping[str, Any]) -> MarketState:
    """Deserialize a dict to a MarketState. Raises KeyError on missing fields."""
    kwargs: dict[str, Any] = {}
    for name in STATE_VAR_NAMES:
        val = d[name]
        if name == "positions":
            if not isinstance(val, Mapping):
                raise TypeError("positions must be a mapping")
            kwargs[name] = {str(trader): _position_from_dict(p) for trader, p in val.items()}
        elif isinstance(val, int) and not isinstance(val, bool):
            kwargs[name] = int(val)  # normalize int subclasses
        else:
            raise TypeError(f"state var {name!r} must be int, got {type(val).__name__}")
    return MarketState(**kwargs)
