from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import requests

from ratefeed.errors import TransportFailureError
from ratefeed.schemas.asset import Asset, AssetSnapshot


def _to_decimal(value: Any) -> Decimal | None:
    if not isinstance(value, str) or value == "":
        return None
    try:
        parsed = Decimal(value)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


class CoinCapRestClient:
    """CoinCap asset list client. One GET returns every asset and a server timestamp."""

    DEFAULT_URL = "https://api.coincap.io/v2/assets"

    def __init__(
        self,
        url: str = DEFAULT_URL,
        *,
        session: Optional[Any] = None,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.url = url
        self.session = session or requests
        self.timeout = timeout
        self.clock = clock

    def _get_payload(self) -> dict:
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise TransportFailureError(f"asset list request failed: {exc}") from exc
        except ValueError as exc:
            raise TransportFailureError("asset list response is not valid JSON") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise TransportFailureError("asset list response is missing the data array")
        return payload

    def fetch_assets(self) -> AssetSnapshot:
        payload = self._get_payload()

        now = self.clock()
        server_ts = payload.get("timestamp")
        if isinstance(server_ts, (int, float)) and not isinstance(server_ts, bool):
            # CoinCap timestamps are epoch milliseconds
            snapshot_ts = min(now, server_ts / 1000.0)
        else:
            snapshot_ts = now

        assets: list[Asset] = []
        seen_symbols: set[str] = set()
        skipped = 0
        for row in payload["data"]:
            if not isinstance(row, dict):
                skipped += 1
                continue
            asset_id = row.get("id")
            symbol = row.get("symbol")
            price = _to_decimal(row.get("priceUsd"))
            if not asset_id or not symbol or price is None:
                skipped += 1
                continue
            symbol = str(symbol)
            # first (highest ranked) row wins when symbols collide
            if symbol in seen_symbols:
                skipped += 1
                continue
            seen_symbols.add(symbol)
            assets.append(
                Asset(
                    id=str(asset_id),
                    symbol=symbol,
                    price=price,
                    updated_at=snapshot_ts,
                )
            )

        if skipped:
            print(f"[REST][asset_rows_skipped] count={skipped}", flush=True)

        return AssetSnapshot(assets=assets, timestamp=snapshot_ts)
