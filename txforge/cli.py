"""
txforge: build fee-correct, signable transactions from a JSON description.

Commands:
  fee       Estimate the fee for a transaction description
  build     Build (and optionally sign) a transaction, print its raw hex
  rates     Fetch fee rates from a miner's Merchant API

Transaction description (JSON):

  {
    "inputs":  [{"txid": "...", "vout": 0, "script": "76a9...88ac", "satoshis": 100000}],
    "outputs": [{"to": "1...", "satoshis": 50000}, {"data": ["0xcafe", "hello"]}],
    "changeTo": "1...",
    "options": {"rates": {"standard": 0.5, "data": 0.25}}
  }

Global flags:
  --network mainnet|testnet|regtest  Override TXFORGE_NETWORK env var
  --debug                            Verbose builder logging
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich import print as rprint

from txforge.api.mapi import MapiClient, MapiError
from txforge.config import config
from txforge.forge import Forge, ForgeError

console = Console()


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fetch_rates(url: str) -> dict[str, float]:
    rates = MapiClient(url, token=config.mapi_token).get_rates()
    console.print(f"[dim]Fee rates from {url}: {rates}[/dim]")
    return rates


def _load_forge(
    spec_path: str, settings: dict, rates: dict[str, float] | None = None
) -> Forge:
    """Create a Forge from a JSON transaction description."""
    try:
        spec = json.loads(Path(spec_path).read_text())
    except ValueError as exc:
        raise click.UsageError(f"{spec_path} is not valid JSON: {exc}") from exc
    if not isinstance(spec, dict):
        raise click.UsageError("Transaction description must be a JSON object.")

    opts = dict(spec.get("options") or {})
    opts.setdefault("network", settings["network"])
    opts.setdefault("debug", settings["debug"])
    opts["rates"] = {**config.rates(), **(opts.get("rates") or {}), **(rates or {})}

    return Forge(
        inputs=spec.get("inputs", []),
        outputs=spec.get("outputs", []),
        change_to=spec.get("changeTo") or spec.get("change_to"),
        change_script=spec.get("changeScript") or spec.get("change_script"),
        options=opts,
    )


# ===========================================================================
# CLI group
# ===========================================================================

@click.group()
@click.version_option(version="0.1.0", prog_name="txforge")
@click.option(
    "--network",
    type=click.Choice(["mainnet", "testnet", "regtest"]),
    default=None,
    envvar="TXFORGE_NETWORK",
    help="Ledger network (overrides TXFORGE_NETWORK env var).",
)
@click.option("--debug", is_flag=True, help="Verbose builder logging.")
@click.pass_context
def main(ctx: click.Context, network: str | None, debug: bool):
    """txforge: fee-correct transaction builder."""
    # Per-invocation settings; the shared config stays untouched
    ctx.obj = {
        "network": network or config.network,
        "debug": debug or config.debug,
    }
    _setup_logging(ctx.obj["debug"])


# ---------------------------------------------------------------------------
# fee
# ---------------------------------------------------------------------------

@main.command()
@click.argument("spec", type=click.Path(exists=True))
@click.option("--rates-from", default=None, help="Merchant API URL to take fee rates from")
@click.pass_obj
def fee(settings, spec, rates_from):
    """Estimate the fee (satoshis) for the transaction described in SPEC."""
    try:
        rates = _fetch_rates(rates_from) if rates_from else None
        forge = _load_forge(spec, settings, rates)
        click.echo(forge.estimate_fee())
    except (ForgeError, MapiError) as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)


# ---------------------------------------------------------------------------
# build
# ---------------------------------------------------------------------------

@main.command()
@click.argument("spec", type=click.Path(exists=True))
@click.option("--wif", "-k", default=None, envvar="TXFORGE_WIF_KEY", help="WIF key to sign every input with")
@click.option("--rates-from", default=None, help="Merchant API URL to take fee rates from")
@click.option("--json-output", is_flag=True, help="Output raw JSON result")
@click.pass_obj
def build(settings, spec, wif, rates_from, json_output):
    """
    Build the transaction described in SPEC and print its raw hex.

    Without --wif the scriptSigs are zeroed placeholders of the final size.

    \b
    Examples:
      txforge build tx.json
      txforge build tx.json --wif L1... --json-output
      txforge build tx.json --rates-from https://merchantapi.taal.com
    """
    try:
        rates = _fetch_rates(rates_from) if rates_from else None
        forge = _load_forge(spec, settings, rates)
        forge.build()
    except (ForgeError, MapiError) as exc:
        console.print(f"[red]Build error: {exc}[/red]")
        sys.exit(1)

    # Fee actually paid: includes the change overhead or any dropped dust change
    fee_sat = forge.input_sum - sum(out.amount for out in forge.tx.outputs)

    failed = []
    if wif:
        try:
            results = forge.sign({"key": wif})
        except ForgeError as exc:
            console.print(f"[red]Signing error: {exc}[/red]")
            sys.exit(1)
        failed = [r for r in results if not r.ok]

    tx_hex = forge.tx.serialize()

    if json_output:
        click.echo(json.dumps({
            "tx_hex": tx_hex,
            "fee": fee_sat,
            "input_sum": forge.input_sum,
            "outputs": [
                {"index": i, "satoshis": out.amount, "script": out.script_pubkey.to_hex()}
                for i, out in enumerate(forge.tx.outputs)
            ],
            "signed": bool(wif) and not failed,
            "failed_inputs": [r.index for r in failed],
        }, indent=2))
    else:
        table = Table(title="Outputs")
        table.add_column("#", justify="right")
        table.add_column("satoshis", justify="right")
        table.add_column("script", style="dim")
        for i, out in enumerate(forge.tx.outputs):
            table.add_row(str(i), f"{out.amount:,}", out.script_pubkey.to_hex())
        console.print(table)
        console.print(f"[green]Fee:[/green] {fee_sat:,} sat")
        for r in failed:
            console.print(f"[yellow]Input {r.index} not signed: {r.error}[/yellow]")
        rprint(tx_hex)

    if failed:
        sys.exit(1)


# ---------------------------------------------------------------------------
# rates
# ---------------------------------------------------------------------------

@main.command()
@click.argument("url", required=False)
@click.option("--relay", is_flag=True, help="Show relay fee rates instead of mining fee rates")
def rates(url, relay):
    """Fetch fee rates (sat/byte) from the Merchant API at URL."""
    url = url or config.mapi_url
    if not url:
        raise click.UsageError("Provide a Merchant API URL or set TXFORGE_MAPI_URL.")
    try:
        data = MapiClient(url, token=config.mapi_token).get_rates(
            "relayFee" if relay else "miningFee"
        )
    except MapiError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)
    rprint(json.dumps(data, indent=2))
