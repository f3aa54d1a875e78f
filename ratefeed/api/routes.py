from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, HTTPException, Request

from ratefeed.errors import (
    ConversionError,
    InvalidFeedPayloadError,
    RateApiClosedError,
    RateFeedError,
    StalePriceError,
    TransportFailureError,
    UnknownAssetError,
)
from ratefeed.services.units import UNITS, convert

router = APIRouter()


def _rate_api(request: Request):
    rate_api = getattr(request.app.state, 'rate_api', None)
    if rate_api is None:
        raise HTTPException(status_code=503, detail=RateApiClosedError.code)
    return rate_api


def _http_error(exc: RateFeedError) -> HTTPException:
    if isinstance(exc, UnknownAssetError):
        return HTTPException(status_code=404, detail=exc.code)
    if isinstance(exc, InvalidFeedPayloadError):
        return HTTPException(status_code=502, detail=exc.code)
    if isinstance(exc, ConversionError):
        return HTTPException(status_code=400, detail=exc.code)
    if isinstance(exc, (StalePriceError, TransportFailureError, RateApiClosedError)):
        return HTTPException(status_code=503, detail=exc.code)
    return HTTPException(status_code=500, detail=exc.code)


def _quote_payload(quote) -> dict:
    payload = quote.model_dump()
    payload['price'] = str(quote.price)
    return payload


@router.get('/prices/{symbol}')
def get_price(symbol: str, request: Request):
    rate_api = _rate_api(request)
    try:
        quote = rate_api.get_quote(symbol.strip().upper())
    except RateFeedError as exc:
        raise _http_error(exc) from exc
    return _quote_payload(quote)


@router.get('/prices')
def get_prices(symbols: str, request: Request):
    rate_api = _rate_api(request)
    req = [s.strip().upper() for s in symbols.split(',') if s.strip()]
    out = []
    errors = {}
    for s in req:
        try:
            out.append(_quote_payload(rate_api.get_quote(s)))
        except InvalidFeedPayloadError as exc:
            raise _http_error(exc) from exc
        except RateFeedError as exc:
            errors[s] = exc.code
    return {'quotes': out, 'errors': errors}


@router.get('/units')
def list_units():
    out = {}
    for name, factory in UNITS.items():
        unit = factory()
        out[name] = {
            'symbol': unit.symbol,
            'unit': unit.unit,
            'exchange_unit': unit.exchange_unit,
            'plugin_base': unit.plugin_base,
        }
    return out


@router.get('/convert')
def convert_amount(amount: str, source: str, dest: str, request: Request):
    source_factory = UNITS.get(source.lower())
    dest_factory = UNITS.get(dest.lower())
    if source_factory is None or dest_factory is None:
        raise HTTPException(status_code=400, detail='UNKNOWN_UNIT')

    try:
        value = Decimal(amount)
    except InvalidOperation as exc:
        raise HTTPException(status_code=400, detail='INVALID_AMOUNT') from exc
    if not value.is_finite() or value <= 0:
        raise HTTPException(status_code=400, detail='INVALID_AMOUNT')

    source_unit = source_factory(value)
    dest_unit = dest_factory()
    rate_api = None
    if source_unit.symbol != dest_unit.symbol:
        rate_api = _rate_api(request)

    try:
        result = convert(source_unit, dest_unit, rate_api)
    except RateFeedError as exc:
        raise _http_error(exc) from exc

    return {
        'amount': str(value),
        'source': source.lower(),
        'dest': dest.lower(),
        'result': str(result),
    }


@router.get('/metrics/feed')
def feed_metrics(request: Request):
    return _rate_api(request).status()
