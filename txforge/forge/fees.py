"""
Byte-weighted fee model.

A transaction is described as a list of parts, each mapping a byte class
(``standard``, ``data``, ...) to a number of bytes. Every class is charged at
its own rate in satoshis per byte.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

from .errors import FeeRateError

DEFAULT_RATES: dict[str, float] = {
    "data": 0.5,
    "standard": 0.5,
}

# Assumed size of a single pay-to-key-hash input
DEFAULT_INPUT_SIZE = 148

# Deducted from change when real outputs exist: half the byte cost of a
# pay-to-key-hash change output at the standard rate
CHANGE_OVERHEAD = 16


def merge_rates(
    base: Mapping[str, float], override: Mapping[str, float] | None = None
) -> dict[str, float]:
    """Return ``base`` with the classes in ``override`` replaced."""
    rates = dict(base)
    if override:
        rates.update(override)
    for cls, rate in rates.items():
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate < 0:
            raise FeeRateError(f"Invalid rate for {cls!r}: {rate!r}")
    return rates


def fee_for(parts: Iterable[Mapping[str, int]], rates: Mapping[str, float]) -> int:
    """Charge every part at its class rate and round the sum up."""
    fee = 0.0
    for part in parts:
        for cls, size in part.items():
            try:
                rate = rates[cls]
            except KeyError:
                raise FeeRateError(f"No fee rate for byte class {cls!r}") from None
            fee += size * rate
    return math.ceil(fee)
