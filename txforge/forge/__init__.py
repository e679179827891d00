from .builder import Forge, SignResult
from .cast import Cast, CastKind, Outpoint, P2PK, P2PKH, cast_class, register_cast
from .errors import (
    ConstructionError,
    DustOutputError,
    FeeRateError,
    ForgeError,
    NotBuiltError,
    StrategyError,
)
from .fees import DEFAULT_RATES, fee_for
from .options import ForgeOptions
from .transaction import (
    DUST_LIMIT,
    address_to_script_pubkey,
    configure_network,
    data_to_script,
    txout_from_data,
    txout_from_params,
    txout_from_script,
    txout_to_address,
)

__all__ = [
    # builder
    "Forge",
    "ForgeOptions",
    "SignResult",
    # casts
    "Cast",
    "CastKind",
    "Outpoint",
    "P2PK",
    "P2PKH",
    "cast_class",
    "register_cast",
    # errors
    "ConstructionError",
    "DustOutputError",
    "FeeRateError",
    "ForgeError",
    "NotBuiltError",
    "StrategyError",
    # fees
    "DEFAULT_RATES",
    "fee_for",
    # ledger helpers
    "DUST_LIMIT",
    "address_to_script_pubkey",
    "configure_network",
    "data_to_script",
    "txout_from_data",
    "txout_from_params",
    "txout_from_script",
    "txout_to_address",
]
