import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from txforge.forge.fees import DEFAULT_RATES
from txforge.forge.options import ForgeOptions

load_dotenv(Path.cwd() / ".env")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    # Ledger network for address encoding
    network: str = field(
        default_factory=lambda: os.getenv("TXFORGE_NETWORK", "mainnet")
    )
    debug: bool = field(default_factory=lambda: _env_flag("TXFORGE_DEBUG"))

    # Fee rates (sat/byte)
    rate_standard: float = field(
        default_factory=lambda: float(
            os.getenv("TXFORGE_RATE_STANDARD", DEFAULT_RATES["standard"])
        )
    )
    rate_data: float = field(
        default_factory=lambda: float(
            os.getenv("TXFORGE_RATE_DATA", DEFAULT_RATES["data"])
        )
    )

    # Merchant API fee quotes
    mapi_url: str | None = field(
        default_factory=lambda: os.getenv("TXFORGE_MAPI_URL") or None
    )
    mapi_token: str | None = field(
        default_factory=lambda: os.getenv("TXFORGE_MAPI_TOKEN") or None
    )

    def rates(self) -> dict[str, float]:
        return {"standard": self.rate_standard, "data": self.rate_data}

    def forge_options(self, **overrides) -> ForgeOptions:
        """Return ForgeOptions built from this config."""
        opts = {"debug": self.debug, "rates": self.rates(), "network": self.network}
        opts.update(overrides)
        return ForgeOptions(**opts)


config = Config()
