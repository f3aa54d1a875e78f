from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class Asset(BaseModel):
    id: str
    symbol: str
    price: Decimal
    updated_at: float
    subscribed: bool = False


class AssetSnapshot(BaseModel):
    assets: list[Asset]
    timestamp: float


class PriceQuote(BaseModel):
    symbol: str
    price: Decimal
    updated_at: float
    freshness_sec: float
    state: str
