"""
Exceptions raised by the transaction builder.
"""

from __future__ import annotations


class ForgeError(Exception):
    pass


class ConstructionError(ForgeError):
    """Malformed input or output parameters."""


class DustOutputError(ForgeError):
    """A spendable output is at or below the dust limit."""


class NotBuiltError(ForgeError):
    """Signing was attempted against a missing or stale draft."""

    def __init__(self, message: str = "TX not built. Call `build()` first."):
        super().__init__(message)


class StrategyError(ForgeError):
    """Raised by an unlocking-script strategy that cannot produce a scriptSig."""


class FeeRateError(ForgeError):
    pass
