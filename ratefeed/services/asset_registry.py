from __future__ import annotations

import threading
from decimal import Decimal
from typing import Mapping

from ratefeed.schemas.asset import Asset, AssetSnapshot


class AssetRegistry:
    """Symbol-keyed asset cache fed by REST snapshots and push prices.

    Every mutation runs under one lock, so merges from the poller thread and
    the websocket thread are applied one at a time. Reads hand out copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, Asset] = {}
        self.closed = False

    def merge_snapshot(self, snapshot: AssetSnapshot) -> int:
        written = 0
        with self._lock:
            if self.closed:
                return 0
            for incoming in snapshot.assets:
                local = self._rows.get(incoming.symbol)
                if local is not None and local.updated_at > snapshot.timestamp:
                    # push data newer than this snapshot
                    continue
                self._rows[incoming.symbol] = Asset(
                    id=incoming.id,
                    symbol=incoming.symbol,
                    price=incoming.price,
                    updated_at=snapshot.timestamp,
                    subscribed=local.subscribed if local is not None else False,
                )
                written += 1
        return written

    def merge_prices(self, prices: Mapping[str, Decimal], now: float) -> int:
        written = 0
        with self._lock:
            if self.closed:
                return 0
            for row in self._rows.values():
                price = prices.get(row.id)
                if price is None:
                    continue
                row.price = price
                row.updated_at = max(row.updated_at, now)
                written += 1
        return written

    def subscribe(self, symbol: str) -> bool:
        """Mark ``symbol`` subscribed. True only for the call that flips the flag."""
        with self._lock:
            row = self._rows.get(symbol)
            if row is None or row.subscribed:
                return False
            row.subscribed = True
            return True

    def lookup(self, symbol_or_id: str) -> Asset | None:
        with self._lock:
            row = self._rows.get(symbol_or_id)
            if row is None:
                row = next((r for r in self._rows.values() if r.id == symbol_or_id), None)
            return row.model_copy() if row is not None else None

    def known_ids(self) -> set[str]:
        with self._lock:
            return {row.id for row in self._rows.values()}

    def subscribed_ids(self) -> list[str]:
        with self._lock:
            return [row.id for row in self._rows.values() if row.subscribed]

    def subscribed_symbols(self) -> list[str]:
        with self._lock:
            return [row.symbol for row in self._rows.values() if row.subscribed]

    def list_all(self) -> list[Asset]:
        with self._lock:
            return [row.model_copy() for row in self._rows.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._rows)

    def discard(self) -> None:
        with self._lock:
            self.closed = True
            self._rows.clear()
