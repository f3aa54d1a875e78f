from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Callable, Optional, Protocol

from pydantic import BaseModel

from ratefeed.errors import ConversionError

_PRECISION = 60


class AssetUnit(BaseModel):
    """An amount of an asset expressed in one of its units.

    ``unit``, ``exchange_unit`` and ``plugin_base`` are orders of magnitude
    relative to the ledger's smallest denomination (satoshi, wei, drop, cent).
    """

    unit: int
    symbol: str
    amount: Decimal = Decimal(1)
    plugin_base: int
    exchange_unit: int


class PriceSource(Protocol):
    def get_price(self, symbol: str) -> Decimal: ...


def _unit_factory(
    symbol: str, *, exchange_unit: int, plugin_base: int
) -> Callable[[int], Callable[..., AssetUnit]]:
    def for_unit(unit: int) -> Callable[..., AssetUnit]:
        def create(amount: Decimal | int | str | None = None) -> AssetUnit:
            return AssetUnit(
                unit=unit,
                symbol=symbol,
                amount=Decimal(amount or 1),
                plugin_base=plugin_base,
                exchange_unit=exchange_unit,
            )

        return create

    return for_unit


_eth = _unit_factory("ETH", exchange_unit=18, plugin_base=9)
eth = _eth(18)
gwei = _eth(9)
wei = _eth(0)

_xrp = _unit_factory("XRP", exchange_unit=6, plugin_base=-3)
xrp = _xrp(6)
drop = _xrp(0)
xrp_base = _xrp(-3)

_btc = _unit_factory("BTC", exchange_unit=8, plugin_base=0)
btc = _btc(8)
satoshi = _btc(0)

_usd = _unit_factory("USD", exchange_unit=2, plugin_base=0)
usd = _usd(2)

UNITS: dict[str, Callable[..., AssetUnit]] = {
    "btc": btc,
    "satoshi": satoshi,
    "eth": eth,
    "gwei": gwei,
    "wei": wei,
    "xrp": xrp,
    "drop": drop,
    "xrp_base": xrp_base,
    "usd": usd,
}


def get_rate(source: AssetUnit, dest: AssetUnit, api: Optional[PriceSource] = None) -> Decimal:
    """Quantity of ``dest`` (in its unit) per one ``source`` (in its unit)."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        rate = Decimal(1)
        if source.symbol != dest.symbol:
            if api is None:
                raise ConversionError(
                    f"a price source is required to convert {source.symbol} to {dest.symbol}"
                )
            rate = api.get_price(source.symbol) / api.get_price(dest.symbol)

        # prices are quoted per unit of exchange (BTC, ETH), rescale to the given units
        shift = (source.unit - source.exchange_unit) - (dest.unit - dest.exchange_unit)
        return rate.scaleb(shift)


def convert(source: AssetUnit, dest: AssetUnit, api: Optional[PriceSource] = None) -> Decimal:
    """Amount of ``dest`` for ``source.amount``, truncated to the ledger's precision."""
    rate = get_rate(source, dest, api)
    places = dest.unit - dest.plugin_base
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return (source.amount * rate).quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)
