"""
Ledger helpers.

Thin wrappers over python-bitcoinutils for the pieces the builder needs:
network selection, address and data scripts, script classification and
serialized sizes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from bitcoinutils.keys import P2pkhAddress
from bitcoinutils.script import OP_CODES, Script
from bitcoinutils.setup import setup as btc_setup
from bitcoinutils.transactions import TxOutput
from bitcoinutils.utils import encode_varint

from .errors import ConstructionError

# Outputs at or below this value are rejected unless they carry data
DUST_LIMIT = 546

OP_0 = 0x00
OP_RETURN = 0x6A

# Opcode number -> name, first name listed wins (OP_0 over OP_FALSE)
_OP_NAMES: dict[int, str] = {}
for _name, _code in OP_CODES.items():
    _OP_NAMES.setdefault(_code[0], _name)


def configure_network(network: str = "mainnet") -> None:
    """Configure python-bitcoinutils for the given network."""
    mapping = {"mainnet": "mainnet", "testnet": "testnet", "regtest": "regtest"}
    btc_setup(mapping.get(network, "mainnet"))


def varint_len(n: int) -> int:
    """Byte length of the varint encoding of ``n``."""
    return len(encode_varint(n))


def script_from_hex(script_hex: str) -> Script:
    """
    Parse a raw script. Scripts that do not serialize back to exactly the
    given bytes (truncated pushes, non-minimal push encodings) are rejected.
    """
    try:
        script = Script.from_raw(script_hex)
        serialized = script.to_hex()
    except (ValueError, TypeError, IndexError, AttributeError) as exc:
        raise ConstructionError(f"Invalid script hex: {script_hex!r}") from exc
    if serialized != script_hex.lower():
        raise ConstructionError(
            f"Script does not round-trip: {script_hex!r} reads back as {serialized!r}"
        )
    return script


def address_to_script_pubkey(address: str) -> Script:
    """Convert a pay-to-key-hash address to its locking script."""
    try:
        return P2pkhAddress(address.strip()).to_script_pub_key()
    except (ValueError, TypeError, AttributeError) as exc:
        raise ConstructionError(f"Invalid address: {address!r}") from exc


def script_to_address(script: Script) -> str | None:
    """Recover the address of a pay-to-key-hash script, else None."""
    raw = script.to_bytes()
    if not is_p2pkh(raw):
        return None
    return P2pkhAddress(hash160=raw[3:23].hex()).to_string()


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_p2pkh(raw: bytes) -> bool:
    # OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG
    return (
        len(raw) == 25
        and raw[:3] == b"\x76\xa9\x14"
        and raw[23:] == b"\x88\xac"
    )


def is_null_data(script: Script) -> bool:
    """True for OP_RETURN and OP_FALSE OP_RETURN scripts."""
    raw = script.to_bytes()
    return raw[:1] == bytes([OP_RETURN]) or raw[:2] == bytes([OP_0, OP_RETURN])


def txout_size(txout: TxOutput) -> int:
    """Serialized size of an output: value, script length prefix, script."""
    script_len = len(txout.script_pubkey.to_bytes())
    return 8 + varint_len(script_len) + script_len


# ---------------------------------------------------------------------------
# Output construction
# ---------------------------------------------------------------------------

def _opcode_name(op: Any) -> str:
    if isinstance(op, str) and op in OP_CODES:
        return op
    if isinstance(op, int) and not isinstance(op, bool) and op in _OP_NAMES:
        return _OP_NAMES[op]
    raise ConstructionError(f"Unknown opcode: {op!r}")


def _data_token(item: Any) -> str:
    if isinstance(item, str) and item[:2].lower() == "0x":
        try:
            return bytes.fromhex(item[2:]).hex()
        except ValueError as exc:
            raise ConstructionError(f"Invalid hex data: {item!r}") from exc
    if item is None:
        return _opcode_name(OP_0)
    if isinstance(item, int) and not isinstance(item, bool):
        return _opcode_name(item)
    if isinstance(item, Mapping) and "op" in item:
        return _opcode_name(item["op"])
    if isinstance(item, (bytes, bytearray)):
        return bytes(item).hex()
    return str(item).encode("utf-8").hex()


def data_to_script(data: Iterable[Any]) -> Script:
    """
    Encode a list of data chunks as an OP_FALSE OP_RETURN script.

    Items prefixed with ``0x`` are pushed as raw bytes, ``{"op": n}``
    mappings become opcode ``n`` and everything else is pushed as its UTF-8
    text. Integers and None become single opcodes; the integer must be a
    named opcode (``0`` or ``0x4c`` and up), so push-length bytes
    ``0x01``-``0x4b`` raise ConstructionError. Use ``0x`` items for data.
    """
    if isinstance(data, (str, bytes)) or not isinstance(data, Iterable):
        raise ConstructionError("data must be a list of chunks")
    tokens = [_opcode_name(OP_0), _opcode_name(OP_RETURN)]
    tokens.extend(_data_token(item) for item in data)
    return Script(tokens)


def _satoshis(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConstructionError(f"Output value must be an integer, got {value!r}")
    if value < 0:
        raise ConstructionError(f"Output value cannot be negative: {value}")
    return value


def txout_from_script(script_hex: str, satoshis: int = 0) -> TxOutput:
    return TxOutput(_satoshis(satoshis), script_from_hex(script_hex))


def txout_from_data(data: Iterable[Any], satoshis: int = 0) -> TxOutput:
    return TxOutput(_satoshis(satoshis), data_to_script(data))


def txout_to_address(address: str, satoshis: int = 0) -> TxOutput:
    return TxOutput(_satoshis(satoshis), address_to_script_pubkey(address))


def first_present(params: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present in ``params`` (None if none is)."""
    for key in keys:
        if params.get(key) is not None:
            return params[key]
    return None


def txout_from_params(params: Mapping[str, Any]) -> TxOutput:
    """
    Build an output from ``{script | data | to, satoshis | amount}``.

    When several origins are given, ``script`` wins over ``data`` which
    wins over ``to``.
    """
    satoshis = first_present(params, "satoshis", "amount")
    if params.get("script"):
        return txout_from_script(params["script"], satoshis)
    if params.get("data") is not None:
        return txout_from_data(params["data"], satoshis)
    if params.get("to"):
        return txout_to_address(params["to"], satoshis)
    raise ConstructionError("Invalid TxOut params")
