"""
Merchant API (mAPI) fee-quote client.

Endpoints:
  GET  /mapi/feeQuote   - miner's current fee policy

A fee quote is a signed JSON envelope whose ``payload`` field is itself a
JSON string:

    {
      "fees": [
        {"feeType": "standard",
         "miningFee": {"satoshis": 500, "bytes": 1000},
         "relayFee":  {"satoshis": 250, "bytes": 1000}},
        {"feeType": "data", ...}
      ],
      ...
    }

``get_rates()`` turns it into the ``{"standard": 0.5, "data": 0.5}`` shape
accepted by ``Forge.estimate_fee()``.
"""

from __future__ import annotations

import json
from typing import Any

import requests


class MapiError(Exception):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"mAPI error {status_code}: {body}")


def rates_from_fee_quote(payload: dict, kind: str = "miningFee") -> dict[str, float]:
    """Per-byte rates keyed by fee type, from a decoded fee-quote payload."""
    rates: dict[str, float] = {}
    try:
        for fee in payload["fees"]:
            quote = fee[kind]
            rates[fee["feeType"]] = quote["satoshis"] / quote["bytes"]
    except (KeyError, TypeError, ZeroDivisionError) as exc:
        raise MapiError(0, f"Malformed fee quote: {exc!r}") from exc
    return rates


class MapiClient:
    """HTTP client for a miner's Merchant API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: int = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def _get(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        resp = self._session.get(url, timeout=self._timeout)
        if not resp.ok:
            raise MapiError(resp.status_code, resp.text)
        return resp.json()

    def get_fee_quote(self) -> dict:
        """Returns the decoded fee-quote payload."""
        envelope = self._get("/mapi/feeQuote")
        payload = envelope.get("payload", envelope)
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError as exc:
                raise MapiError(0, f"Malformed fee quote payload: {payload!r}") from exc
        return payload

    def get_rates(self, kind: str = "miningFee") -> dict[str, float]:
        """
        Returns per-byte rates by fee type.

        Args:
            kind: ``miningFee`` (default) or ``relayFee``.
        """
        return rates_from_fee_quote(self.get_fee_quote(), kind)
