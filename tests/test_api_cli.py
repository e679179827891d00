"""
Tests for the Merchant API client, configuration and CLI.

Run with:  pytest -v
Requires:  pip install -e ".[dev]"
"""

from __future__ import annotations

import json

import pytest
import responses
from click.testing import CliRunner

from txforge.api.mapi import MapiClient, MapiError, rates_from_fee_quote
from txforge.cli import main
from txforge.config import Config, config


# ===========================================================================
# Helpers
# ===========================================================================

BASE = "https://mapi.example.com"

ADDRESS = "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"
P2PKH_SCRIPT = "76a914751e76e8199196d454941c45d1b3a323f1433bd688ac"
WIF = "KwDiBf89QgGbjEhKnhXJuH7LrciVrZi3qYjgd9M7rFU73sVHnoWn"

QUOTE = {
    "apiVersion": "1.4.0",
    "fees": [
        {
            "feeType": "standard",
            "miningFee": {"satoshis": 500, "bytes": 1000},
            "relayFee": {"satoshis": 250, "bytes": 1000},
        },
        {
            "feeType": "data",
            "miningFee": {"satoshis": 250, "bytes": 1000},
            "relayFee": {"satoshis": 100, "bytes": 1000},
        },
    ],
}


def envelope(payload: dict) -> dict:
    return {
        "payload": json.dumps(payload),
        "signature": None,
        "publicKey": None,
        "encoding": "UTF-8",
        "mimetype": "application/json",
    }


def make_client(**kwargs) -> MapiClient:
    return MapiClient(base_url=BASE, **kwargs)


@pytest.fixture
def spec_file(tmp_path):
    def write(**spec):
        path = tmp_path / "tx.json"
        path.write_text(json.dumps(spec))
        return str(path)
    return write


UTXO = {"txid": "a" * 64, "vout": 0, "script": P2PKH_SCRIPT, "satoshis": 100_000}


# ===========================================================================
# Unit tests: fee quotes
# ===========================================================================

class TestFeeQuote:
    def test_rates_from_quote(self):
        assert rates_from_fee_quote(QUOTE) == {"standard": 0.5, "data": 0.25}

    def test_relay_rates(self):
        assert rates_from_fee_quote(QUOTE, "relayFee") == {"standard": 0.25, "data": 0.1}

    def test_malformed_quote(self):
        with pytest.raises(MapiError):
            rates_from_fee_quote({"fees": [{"feeType": "standard"}]})

    @responses.activate
    def test_get_fee_quote_decodes_payload(self):
        responses.add(responses.GET, f"{BASE}/mapi/feeQuote", json=envelope(QUOTE))
        assert make_client().get_fee_quote()["apiVersion"] == "1.4.0"

    @responses.activate
    def test_get_rates(self):
        responses.add(responses.GET, f"{BASE}/mapi/feeQuote", json=envelope(QUOTE))
        assert make_client().get_rates() == {"standard": 0.5, "data": 0.25}

    @responses.activate
    def test_token_sent_as_bearer(self):
        responses.add(responses.GET, f"{BASE}/mapi/feeQuote", json=envelope(QUOTE))
        make_client(token="SECRET").get_rates()
        assert responses.calls[0].request.headers["Authorization"] == "Bearer SECRET"

    @responses.activate
    def test_http_error(self):
        responses.add(
            responses.GET,
            f"{BASE}/mapi/feeQuote",
            json={"error": "unavailable"},
            status=503,
        )
        with pytest.raises(MapiError) as exc_info:
            make_client().get_fee_quote()
        assert "503" in str(exc_info.value)

    @responses.activate
    def test_bad_payload_string(self):
        responses.add(
            responses.GET, f"{BASE}/mapi/feeQuote", json={"payload": "{not json"}
        )
        with pytest.raises(MapiError):
            make_client().get_fee_quote()


# ===========================================================================
# Unit tests: config
# ===========================================================================

class TestConfig:
    def test_defaults(self, monkeypatch):
        for var in ("TXFORGE_NETWORK", "TXFORGE_DEBUG", "TXFORGE_RATE_STANDARD", "TXFORGE_RATE_DATA"):
            monkeypatch.delenv(var, raising=False)
        cfg = Config()
        assert cfg.network == "mainnet"
        assert cfg.debug is False
        assert cfg.rates() == {"standard": 0.5, "data": 0.5}

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TXFORGE_RATE_STANDARD", "1.0")
        monkeypatch.setenv("TXFORGE_DEBUG", "true")
        opts = Config().forge_options()
        assert opts.rates["standard"] == 1.0
        assert opts.debug is True

    def test_forge_option_overrides(self):
        opts = Config().forge_options(debug=False, network="testnet")
        assert opts.network == "testnet"
        assert opts.debug is False


# ===========================================================================
# CLI
# ===========================================================================

class TestCli:
    def test_fee(self, spec_file):
        path = spec_file(inputs=[UTXO], outputs=[{"to": ADDRESS, "satoshis": 50_000}])
        result = CliRunner().invoke(main, ["fee", path])
        assert result.exit_code == 0, result.output
        assert result.output.strip().endswith("96")

    def test_build_json(self, spec_file):
        path = spec_file(inputs=[UTXO], changeTo=ADDRESS)
        result = CliRunner().invoke(main, ["build", path, "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["fee"] == 96
        assert data["outputs"] == [
            {"index": 0, "satoshis": 100_000 - 96, "script": P2PKH_SCRIPT}
        ]
        assert data["signed"] is False

    def test_build_json_fee_includes_change_overhead(self, spec_file):
        path = spec_file(
            inputs=[UTXO],
            outputs=[{"to": ADDRESS, "satoshis": 50_000}],
            changeTo=ADDRESS,
        )
        result = CliRunner().invoke(main, ["build", path, "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        # 96 estimated plus 16 for the change output
        assert data["fee"] == 112
        assert [o["satoshis"] for o in data["outputs"]] == [50_000, 49_888]

    def test_build_json_fee_includes_dropped_change(self, spec_file):
        path = spec_file(
            inputs=[UTXO],
            outputs=[{"to": ADDRESS, "satoshis": 99_500}],
            changeTo=ADDRESS,
        )
        result = CliRunner().invoke(main, ["build", path, "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["fee"] == 500
        assert len(data["outputs"]) == 1

    def test_build_and_sign(self, spec_file):
        path = spec_file(inputs=[UTXO], changeTo=ADDRESS)
        result = CliRunner().invoke(main, ["build", path, "--wif", WIF, "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["signed"] is True
        assert data["failed_inputs"] == []

    def test_build_dust_fails(self, spec_file):
        path = spec_file(inputs=[UTXO], outputs=[{"to": ADDRESS, "satoshis": 1}])
        result = CliRunner().invoke(main, ["build", path])
        assert result.exit_code == 1

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        result = CliRunner().invoke(main, ["fee", str(path)])
        assert result.exit_code != 0

    @responses.activate
    def test_fee_with_mapi_rates(self, spec_file):
        responses.add(responses.GET, f"{BASE}/mapi/feeQuote", json=envelope(QUOTE))
        path = spec_file(inputs=[UTXO], outputs=[{"data": ["0xaabb"]}])
        result = CliRunner().invoke(main, ["fee", path, "--rates-from", BASE])
        assert result.exit_code == 0, result.output
        # 158 standard bytes at 0.5, 14 data bytes at 0.25
        assert result.output.strip().endswith("83")

    @responses.activate
    def test_rates(self):
        responses.add(responses.GET, f"{BASE}/mapi/feeQuote", json=envelope(QUOTE))
        result = CliRunner().invoke(main, ["rates", BASE])
        assert result.exit_code == 0, result.output
        assert "standard" in result.output

    def test_rates_requires_url(self, mocker):
        mocker.patch("txforge.cli.config.mapi_url", None)
        result = CliRunner().invoke(main, ["rates"])
        assert result.exit_code != 0

    def test_global_flags_do_not_leak(self, spec_file):
        network, debug = config.network, config.debug
        path = spec_file(inputs=[UTXO], changeTo=ADDRESS)
        result = CliRunner().invoke(main, ["--network", "testnet", "--debug", "fee", path])
        assert result.exit_code == 0, result.output
        assert (config.network, config.debug) == (network, debug)
