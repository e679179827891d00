"""
Forge transaction builder.

Typical use:

    forge = Forge(
        inputs=[{"txid": "...", "vout": 0, "script": "76a914...88ac", "satoshis": 100000}],
        outputs=[{"to": "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH", "satoshis": 50000}],
        change_to="1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH",
    )
    forge.build()
    forge.sign({"key": privkey})
    raw_hex = forge.tx.serialize()

``build()`` assembles the transaction with placeholder scriptSigs of the
final length, so the fee and change can be computed before anything is
signed. ``sign()`` then swaps every placeholder for the real scriptSig.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from bitcoinutils.script import Script
from bitcoinutils.transactions import Transaction, TxInput, TxOutput

from . import fees
from .cast import Cast, CastKind, cast_class
from .errors import ConstructionError, DustOutputError, NotBuiltError
from .options import ForgeOptions
from .transaction import (
    DUST_LIMIT,
    address_to_script_pubkey,
    configure_network,
    first_present,
    is_null_data,
    script_from_hex,
    script_to_address,
    txout_from_params,
    txout_size,
    varint_len,
)

log = logging.getLogger(__name__)


@dataclass
class SignResult:
    """Outcome of signing one input during ``Forge.sign()``."""
    index: int
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Forge:
    """Builds and signs a transaction from inputs, outputs and a change script."""

    def __init__(
        self,
        inputs=None,
        outputs=None,
        change_to: str | None = None,
        change_script: Script | str | None = None,
        options: ForgeOptions | Mapping[str, Any] | None = None,
    ):
        if not isinstance(options, ForgeOptions):
            options = ForgeOptions.from_dict(options)
        self.options = options
        configure_network(options.network)

        self.tx = Transaction([], [])
        self.inputs: list[Cast] = []
        self.outputs: list[TxOutput] = []
        self._change_script: Script | None = None

        self.add_input(inputs or [])
        self.add_output(outputs or [])

        if change_to:
            self.change_to = change_to
        elif change_script:
            self.change_script = change_script

        self._debug(
            "Forge: %d inputs, %d outputs, change=%s",
            len(self.inputs), len(self.outputs), self.change_to,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @staticmethod
    def cast(kind: CastKind, params: Mapping[str, Any]) -> Cast:
        """
        Instantiate a cast of the given kind from raw UTXO params.

        Args:
            kind:   Cast kind, e.g. ``CastKind.P2PKH``.
            params: ``txid``, ``vout`` (or ``outputIndex`` / ``txOutNum``),
                    ``script`` (hex), ``satoshis`` (or ``amount``) and an
                    optional ``nSequence``.
        """
        if not isinstance(params, Mapping):
            raise ConstructionError("Input must be an instance of Cast")

        vout = first_present(
            params, "vout", "outputIndex", "output_index", "txOutNum", "txout_num"
        )
        satoshis = first_present(params, "satoshis", "amount")
        sequence = first_present(params, "nSequence", "sequence")

        if not isinstance(params.get("script"), str):
            raise ConstructionError("Input params require a hex `script`")
        if isinstance(satoshis, bool) or not isinstance(satoshis, int) or satoshis < 0:
            raise ConstructionError(f"Invalid input value: {satoshis!r}")

        txout = TxOutput(satoshis, script_from_hex(params["script"]))
        return cast_class(kind)(params.get("txid"), vout, txout, sequence)

    def add_input(self, input) -> "Forge":
        """
        Add an input, or a list of inputs, to the forge.

        Anything that is not a Cast is treated as raw UTXO params for a
        pay-to-key-hash cast. List items are added one by one, so items
        before a failing one stay added.
        """
        if isinstance(input, (list, tuple)):
            for i in input:
                self.add_input(i)
            return self

        if isinstance(input, Cast):
            self.inputs.append(input)
        else:
            self.inputs.append(Forge.cast(CastKind.P2PKH, input))
        return self

    def add_output(self, output) -> "Forge":
        """
        Add an output, or a list of outputs, to the forge.

        Params must contain one of ``script`` (hex), ``data`` (list of
        chunks) or ``to`` (address), plus ``satoshis`` unless the output is
        a data output.
        """
        if isinstance(output, (list, tuple)):
            for o in output:
                self.add_output(o)
            return self

        if isinstance(output, TxOutput):
            self.outputs.append(output)
        elif isinstance(output, Mapping):
            self.outputs.append(txout_from_params(output))
        else:
            raise ConstructionError("Invalid TxOut params")
        return self

    # ------------------------------------------------------------------
    # Change
    # ------------------------------------------------------------------

    @property
    def change_script(self) -> Script | None:
        return self._change_script

    @change_script.setter
    def change_script(self, script: Script | str | None) -> None:
        if isinstance(script, str):
            script = script_from_hex(script)
        self._change_script = script

    @property
    def change_to(self) -> str | None:
        """Change address, if the change script is pay-to-key-hash."""
        if self._change_script is None:
            return None
        return script_to_address(self._change_script)

    @change_to.setter
    def change_to(self, address: str | None) -> None:
        self._change_script = (
            None if address is None else address_to_script_pubkey(address)
        )

    # ------------------------------------------------------------------
    # Sums
    # ------------------------------------------------------------------

    @property
    def input_sum(self) -> int:
        return sum(cast.satoshis for cast in self.inputs)

    @property
    def output_sum(self) -> int:
        return sum(txout.amount for txout in self.outputs)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> "Forge":
        """
        Build the transaction with placeholder scriptSigs.

        Must be called before signing. Any previous draft is discarded, so
        calling it again after changing inputs or outputs is safe.
        """
        tx = Transaction([], [])

        for cast in self.inputs:
            tx.inputs.append(
                TxInput(
                    cast.txid,
                    cast.vout,
                    script_sig=cast.placeholder(),
                    sequence=cast.outpoint.sequence_bytes(),
                )
            )

        for txout in self.outputs:
            if txout.amount <= DUST_LIMIT and not is_null_data(txout.script_pubkey):
                raise DustOutputError(
                    f"Cannot create output of {txout.amount} sat, "
                    f"dust limit is {DUST_LIMIT} sat"
                )
            tx.outputs.append(TxOutput(txout.amount, txout.script_pubkey))

        if self._change_script is not None:
            change = self.input_sum - self.output_sum - self.estimate_fee()

            # With no outputs the change output is already in the estimate
            if self.outputs:
                change -= fees.CHANGE_OVERHEAD

            if change > DUST_LIMIT:
                tx.outputs.append(TxOutput(change, self._change_script))
            else:
                self._debug("Forge: dropping %d sat change", change)

        self.tx = tx
        self._debug(
            "Forge: built %d inputs, %d outputs",
            len(tx.inputs), len(tx.outputs),
        )
        return self

    # ------------------------------------------------------------------
    # Sign
    # ------------------------------------------------------------------

    def sign(self, params: dict[str, Any] | None = None) -> list[SignResult]:
        """
        Sign every input with the same params. Must be called after build().

        Inputs that fail to sign are logged and reported in the result list;
        they keep their placeholder scriptSig. Use ``sign_input()`` to pass
        different params to different inputs.
        """
        if len(self.inputs) != len(self.tx.inputs):
            raise NotBuiltError()

        results = []
        for vin in range(len(self.inputs)):
            try:
                self.sign_input(vin, params)
            except Exception as exc:
                log.warning("Forge: could not sign input %d: %s", vin, exc)
                results.append(SignResult(vin, exc))
            else:
                results.append(SignResult(vin))
        return results

    def sign_input(self, vin: int, params: dict[str, Any] | None = None) -> "Forge":
        """Replace the placeholder scriptSig of input ``vin`` with the real one."""
        if not (
            0 <= vin < len(self.inputs)
            and vin < len(self.tx.inputs)
            and self._matches_draft(vin)
        ):
            raise NotBuiltError()

        script = self.inputs[vin].script_sig(self, params)
        self.tx.inputs[vin].script_sig = script
        self._debug("Forge: signed input %d", vin)
        return self

    def _matches_draft(self, vin: int) -> bool:
        cast, txin = self.inputs[vin], self.tx.inputs[vin]
        return (
            txin.txid.lower() == cast.txid.lower()
            and txin.txout_index == cast.vout
        )

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def estimate_fee(self, rates: Mapping[str, float] | None = None) -> int:
        """
        Estimate the fee of the current inputs and outputs.

        Args:
            rates: Per-byte rates by class (``standard``, ``data``), e.g. from
                   a miner's fee quote. Merged over the forge's own rates.

        Returns:
            Fee in satoshis, rounded up.
        """
        rates = fees.merge_rates(self.options.rates, rates)

        parts: list[dict[str, int]] = [
            {"standard": 4},  # version
            {"standard": 4},  # locktime
            {"standard": varint_len(len(self.inputs))},
            {"standard": varint_len(len(self.outputs))},
        ]

        if self.inputs:
            parts.extend({"standard": cast.size()} for cast in self.inputs)
        else:
            parts.append({"standard": fees.DEFAULT_INPUT_SIZE})

        if self.outputs:
            for txout in self.outputs:
                cls = "data" if is_null_data(txout.script_pubkey) else "standard"
                parts.append({cls: txout_size(txout)})
        elif self._change_script is not None:
            parts.append({"standard": txout_size(TxOutput(0, self._change_script))})

        return fees.fee_for(parts, rates)

    def _debug(self, msg: str, *args: Any) -> None:
        if self.options.debug:
            log.debug(msg, *args)
