from __future__ import annotations

from collections.abc import Container, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any


def parse_price(value: Any) -> Decimal | None:
    """Return the decimal for a finite, strictly positive numeric string, else ``None``."""
    if not isinstance(value, str):
        return None
    try:
        price = Decimal(value.strip())
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def is_valid_price_payload(payload: Any, known_ids: Container[str]) -> bool:
    """Check a decoded push message of the form ``{"bitcoin": "51000.12", ...}``.

    Every key must be a known asset id and every value a numeric string
    parsing to a finite, strictly positive decimal. Wrong shapes are reported
    as invalid instead of raising.
    """
    if not isinstance(payload, Mapping):
        return False
    for asset_id, value in payload.items():
        if not isinstance(asset_id, str) or asset_id not in known_ids:
            return False
        if parse_price(value) is None:
            return False
    return True


def to_price_map(payload: Mapping[str, str]) -> dict[str, Decimal]:
    """Convert an already validated payload into decimals."""
    return {asset_id: Decimal(value.strip()) for asset_id, value in payload.items()}
