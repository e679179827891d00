"""
Unlocking-script strategies ("casts").

A cast pairs an outpoint and the output it spends with a recipe for the
scriptSig that unlocks it. Every cast can produce a placeholder of the final
scriptSig length before any signature exists, so the builder can size the
transaction and estimate its fee, and then the final scriptSig once the draft
is complete.

Casts are registered by kind:

    @register_cast
    class P2PKH(Cast):
        kind = CastKind.P2PKH
        ...

and looked up with ``cast_class(CastKind.P2PKH)``.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from bitcoinutils.constants import SIGHASH_ALL
from bitcoinutils.keys import PrivateKey
from bitcoinutils.script import Script
from bitcoinutils.transactions import TxOutput

from .errors import ConstructionError, StrategyError
from .transaction import is_p2pkh, varint_len

if TYPE_CHECKING:
    from .builder import Forge

DEFAULT_SEQUENCE = 0xFFFFFFFF

# Placeholder widths: DER signature plus sighash byte, compressed pubkey
SIG_SIZE = 72
PUBKEY_SIZE = 33

_TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


class CastKind(Enum):
    P2PKH = "p2pkh"
    P2PK = "p2pk"


@dataclass(frozen=True)
class Outpoint:
    txid: str
    vout: int
    sequence: int = DEFAULT_SEQUENCE

    def __post_init__(self):
        if not isinstance(self.txid, str) or not _TXID_RE.match(self.txid):
            raise ConstructionError(f"Invalid txid: {self.txid!r}")
        if isinstance(self.vout, bool) or not isinstance(self.vout, int) or self.vout < 0:
            raise ConstructionError(f"Invalid output index: {self.vout!r}")
        if (
            isinstance(self.sequence, bool)
            or not isinstance(self.sequence, int)
            or not 0 <= self.sequence <= DEFAULT_SEQUENCE
        ):
            raise ConstructionError(f"Invalid sequence: {self.sequence!r}")

    def sequence_bytes(self) -> bytes:
        return self.sequence.to_bytes(4, "little")


class Cast(ABC):
    """Base class for unlocking-script strategies."""

    kind: CastKind

    def __init__(
        self,
        txid: str,
        vout: int,
        txout: TxOutput,
        sequence: int | None = None,
    ):
        self.outpoint = Outpoint(
            txid, vout, DEFAULT_SEQUENCE if sequence is None else sequence
        )
        self.txout = txout

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.txid[:12]}...:{self.vout}, "
            f"{self.satoshis} sat)"
        )

    @property
    def txid(self) -> str:
        return self.outpoint.txid

    @property
    def vout(self) -> int:
        return self.outpoint.vout

    @property
    def sequence(self) -> int:
        return self.outpoint.sequence

    @property
    def satoshis(self) -> int:
        return self.txout.amount

    def size(self) -> int:
        """Serialized size of the input once signed."""
        script_len = len(self.placeholder().to_bytes())
        # txid + vout + script length + script + sequence
        return 32 + 4 + varint_len(script_len) + script_len + 4

    @abstractmethod
    def placeholder(self) -> Script:
        """The scriptSig with signatures and other dynamic data zeroed."""

    @abstractmethod
    def script_sig(self, forge: "Forge", params: dict[str, Any] | None) -> Script:
        """The final scriptSig for this input of ``forge.tx``."""

    def input_index(self, forge: "Forge") -> int:
        for i, cast in enumerate(forge.inputs):
            if cast is self:
                return i
        raise StrategyError(f"{self!r} is not an input of this forge")


_CASTS: dict[CastKind, type[Cast]] = {}


def register_cast(cls: type[Cast]) -> type[Cast]:
    _CASTS[cls.kind] = cls
    return cls


def cast_class(kind: CastKind) -> type[Cast]:
    try:
        return _CASTS[kind]
    except KeyError:
        raise ConstructionError(f"No cast registered for {kind!r}") from None


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------

def _signing_key(params: dict[str, Any] | None) -> PrivateKey:
    key = (params or {}).get("key")
    if key is None:
        raise StrategyError("Missing signing key: pass params={'key': ...}")
    if isinstance(key, PrivateKey):
        return key
    try:
        return PrivateKey(key)
    except Exception as exc:
        raise StrategyError("Signing key is not a valid WIF") from exc


def _sighash(params: dict[str, Any] | None) -> int:
    return (params or {}).get("sighash", SIGHASH_ALL)


@register_cast
class P2PKH(Cast):
    """Spends a pay-to-key-hash output: ``<sig> <pubkey>``."""

    kind = CastKind.P2PKH

    def placeholder(self) -> Script:
        return Script(["00" * SIG_SIZE, "00" * PUBKEY_SIZE])

    def script_sig(self, forge: "Forge", params: dict[str, Any] | None) -> Script:
        privkey = _signing_key(params)
        pubkey = privkey.get_public_key()

        locking = self.txout.script_pubkey.to_bytes()
        if not is_p2pkh(locking):
            raise StrategyError("Prior output is not a pay-to-key-hash script")
        if locking[3:23].hex() != pubkey.get_address().to_hash160():
            raise StrategyError("Signing key does not match the prior output")

        vin = self.input_index(forge)
        sig = privkey.sign_input(
            forge.tx, vin, self.txout.script_pubkey, _sighash(params)
        )
        return Script([sig, pubkey.to_hex()])


@register_cast
class P2PK(Cast):
    """Spends a pay-to-pubkey output: ``<sig>``."""

    kind = CastKind.P2PK

    def placeholder(self) -> Script:
        return Script(["00" * SIG_SIZE])

    def script_sig(self, forge: "Forge", params: dict[str, Any] | None) -> Script:
        privkey = _signing_key(params)
        pubkey = privkey.get_public_key()

        locking = self.txout.script_pubkey.to_bytes()
        pushed = locking[1:-1].hex()
        if pushed not in (pubkey.to_hex(compressed=True), pubkey.to_hex(compressed=False)):
            raise StrategyError("Signing key does not match the prior output")

        vin = self.input_index(forge)
        sig = privkey.sign_input(
            forge.tx, vin, self.txout.script_pubkey, _sighash(params)
        )
        return Script([sig])
