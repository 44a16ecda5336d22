"""Market configuration.

`MarketConfig` is an immutable parameter set validated on construction.
`load_config()` reads the same fields from a YAML mapping, e.g.::

    skew_scale: 1000000
    leverage_cap: 10
    maintenance_margin_bps: 500
    liquidation_fee_bps: 100
    collateral_scale: 1000000000000   # 1e18-quote / 1e6-collateral

Fields not present in the file keep their defaults; unknown keys are rejected.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .math import BPS_SCALE


@dataclass(frozen=True)
class MarketConfig:
    """Risk and funding parameters of one market."""

    # Open-interest imbalance that produces a rate of 100% per day
    skew_scale: int = 1_000_000
    seconds_per_day: int = 86_400
    leverage_cap: int = 10
    maintenance_margin_bps: int = 500
    liquidation_fee_bps: int = 100
    # Quote units per collateral unit
    collateral_scale: int = 1

    def __post_init__(self) -> None:
        for f in fields(self):
            val = getattr(self, f.name)
            if not isinstance(val, int) or isinstance(val, bool):
                raise TypeError(f"{f.name} must be int")
            if val <= 0:
                raise ValueError(f"{f.name} must be positive: {val}")
        if self.liquidation_fee_bps >= self.maintenance_margin_bps:
            raise ValueError("liquidation_fee_bps must be below maintenance_margin_bps")
        if self.maintenance_margin_bps >= BPS_SCALE:
            raise ValueError("maintenance_margin_bps must be below 10000")
        # Keeps a liquidatable position's remaining margin below its collateral.
        if self.leverage_cap * self.maintenance_margin_bps > BPS_SCALE:
            raise ValueError("leverage_cap * maintenance_margin_bps must not exceed 10000")


CONFIG_FIELD_NAMES: tuple[str, ...] = tuple(MarketConfig.__dataclass_fields__)


def config_from_dict(d: Mapping[str, Any]) -> MarketConfig:
    """Build a MarketConfig from a mapping; missing keys use defaults."""
    unknown = sorted(set(d) - set(CONFIG_FIELD_NAMES))
    if unknown:
        raise KeyError(f"unknown config keys: {', '.join(unknown)}")
    return MarketConfig(**dict(d))


def config_to_dict(config: MarketConfig) -> dict[str, int]:
    return asdict(config)


def load_config(path: str | Path) -> MarketConfig:
    """Load a MarketConfig from a YAML file."""
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if obj is None:
        return MarketConfig()
    if not isinstance(obj, Mapping):
        raise TypeError("config YAML must be a mapping")
    return config_from_dict(obj)
