from __future__ import annotations

import threading
import time
from decimal import Decimal
from typing import Any, Callable, Optional

from ratefeed.config.settings import Settings, get_settings
from ratefeed.errors import (
    InvalidFeedPayloadError,
    RateApiClosedError,
    StalePriceError,
    UnknownAssetError,
)
from ratefeed.integrations.coincap_rest import CoinCapRestClient
from ratefeed.schemas.asset import PriceQuote
from ratefeed.services.asset_registry import AssetRegistry
from ratefeed.services.polling_refresher import PollingRefresher
from ratefeed.services.subscription_manager import SubscriptionManager


class RateApi:
    """Price lookups backed by the asset registry, with lazy push subscriptions.

    The first lookup of a symbol subscribes it and triggers a resubscribe
    without waiting for the socket; that call still answers from the registry
    as it stood, so it usually fails with ``StalePriceError`` until the feed
    delivers.
    """

    def __init__(
        self,
        *,
        registry: AssetRegistry,
        subscription_manager: SubscriptionManager,
        refresher: PollingRefresher,
        stale_after_sec: float = 30.0,
        reference_currency: str = "USD",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.subscription_manager = subscription_manager
        self.refresher = refresher
        self.stale_after_sec = stale_after_sec
        self.reference_currency = reference_currency
        self.clock = clock
        self.active = True
        self._disconnect_lock = threading.Lock()
        self.resubscribe_requests = 0

    def get_quote(self, symbol: str) -> PriceQuote:
        now = self.clock()
        # every price is denominated in the reference currency
        if symbol == self.reference_currency:
            return PriceQuote(
                symbol=symbol,
                price=Decimal(1),
                updated_at=now,
                freshness_sec=0.0,
                state="HEALTHY",
            )

        if not self.active:
            raise RateApiClosedError("rate api is disconnected")
        fatal = self.subscription_manager.fatal_error
        if fatal is not None:
            raise InvalidFeedPayloadError(str(fatal)) from fatal

        asset = self.registry.lookup(symbol)
        if asset is None:
            raise UnknownAssetError(symbol)

        # concurrent first lookups race on the flag; only the winner resubscribes
        if not asset.subscribed and self.registry.subscribe(asset.symbol):
            self.resubscribe_requests += 1
            print(f"[RATE][resubscribe_request] symbol={asset.symbol}", flush=True)
            self.subscription_manager.request_resubscribe()

        age = max(now - asset.updated_at, 0.0)
        if age > self.stale_after_sec:
            raise StalePriceError(asset.symbol, age, self.stale_after_sec)

        return PriceQuote(
            symbol=asset.symbol,
            price=asset.price,
            updated_at=asset.updated_at,
            freshness_sec=age,
            state="HEALTHY",
        )

    def get_price(self, symbol: str) -> Decimal:
        return self.get_quote(symbol).price

    def disconnect(self) -> None:
        with self._disconnect_lock:
            if not self.active:
                return
            self.active = False
        self.subscription_manager.close()
        self.refresher.stop()
        self.registry.discard()
        print("[RATE][disconnect] done", flush=True)

    def status(self) -> dict:
        return {
            "active": self.active,
            "cached_assets": self.registry.count(),
            "subscribed_symbols": self.registry.subscribed_symbols(),
            "resubscribe_requests": self.resubscribe_requests,
            **self.subscription_manager.status(),
            "poller": self.refresher.metrics(),
        }


def connect(
    settings: Optional[Settings] = None,
    *,
    rest_client: Optional[Any] = None,
    websocket_app_factory: Optional[Callable[..., Any]] = None,
    timer_factory: Optional[Callable[..., Any]] = None,
    clock: Callable[[], float] = time.time,
    start_polling: bool = True,
) -> RateApi:
    """Fetch the asset list once, then return a live ``RateApi``.

    Raises ``TransportFailureError`` when the first fetch fails.
    """
    settings = settings or get_settings()
    rest_client = rest_client or CoinCapRestClient(
        settings.RATEFEED_REST_URL,
        timeout=settings.RATEFEED_HTTP_TIMEOUT_SEC,
        clock=clock,
    )

    registry = AssetRegistry()
    registry.merge_snapshot(rest_client.fetch_assets())
    print(f"[RATE][connect] assets={registry.count()}", flush=True)

    subscription_manager = SubscriptionManager(
        registry=registry,
        ws_url=settings.RATEFEED_WS_URL,
        reconnect_delay_sec=settings.RATEFEED_RECONNECT_DELAY_SEC,
        websocket_app_factory=websocket_app_factory,
        timer_factory=timer_factory,
        clock=clock,
    )
    refresher = PollingRefresher(
        registry=registry,
        fetch_snapshot=rest_client.fetch_assets,
        interval_sec=settings.RATEFEED_POLL_INTERVAL_SEC,
    )
    if start_polling:
        refresher.start()

    return RateApi(
        registry=registry,
        subscription_manager=subscription_manager,
        refresher=refresher,
        stale_after_sec=settings.RATEFEED_STALE_AFTER_SEC,
        reference_currency=settings.RATEFEED_REFERENCE_CURRENCY,
        clock=clock,
    )
