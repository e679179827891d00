from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .fees import DEFAULT_RATES, merge_rates


@dataclass(frozen=True)
class ForgeOptions:
    """Builder settings, fixed for the lifetime of a Forge."""
    debug: bool = False
    rates: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_RATES))
    network: str = "mainnet"

    def __post_init__(self):
        rates = merge_rates(DEFAULT_RATES, self.rates)
        object.__setattr__(self, "rates", MappingProxyType(rates))

    @classmethod
    def from_dict(cls, d: Mapping[str, Any] | None) -> "ForgeOptions":
        d = d or {}
        return cls(
            debug=bool(d.get("debug", False)),
            rates=d.get("rates") or {},
            network=d.get("network", "mainnet"),
        )
