from __future__ import annotations


class RateFeedError(Exception):
    code = "RATE_FEED_ERROR"
    retryable = False


class UnknownAssetError(RateFeedError):
    """Symbol has no registry entry (yet)."""

    code = "UNKNOWN_ASSET"
    retryable = True

    def __init__(self, symbol: str) -> None:
        super().__init__(f"asset not available via the rate feed: {symbol}")
        self.symbol = symbol


class StalePriceError(RateFeedError):
    """Registry entry exists but is older than the staleness threshold."""

    code = "STALE_PRICE"
    retryable = True

    def __init__(self, symbol: str, age_sec: float, stale_after_sec: float) -> None:
        super().__init__(
            f"price for {symbol} hasn't been updated within the last {stale_after_sec:g} seconds"
            f" (age={age_sec:.1f}s)"
        )
        self.symbol = symbol
        self.age_sec = age_sec
        self.stale_after_sec = stale_after_sec


class InvalidFeedPayloadError(RateFeedError):
    """Push payload broke the provider contract. Not recoverable."""

    code = "INVALID_FEED_PAYLOAD"
    retryable = False


class TransportFailureError(RateFeedError):
    code = "TRANSPORT_FAILURE"
    retryable = True


class RateApiClosedError(RateFeedError):
    code = "RATE_API_CLOSED"
    retryable = False


class ConversionError(RateFeedError):
    code = "CONVERSION_UNAVAILABLE"
    retryable = False
