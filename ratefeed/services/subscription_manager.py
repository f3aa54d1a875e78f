from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional

from ratefeed.errors import InvalidFeedPayloadError
from ratefeed.integrations.coincap_ws import (
    build_prices_url,
    decode_price_message,
    default_websocket_app_factory,
    detach_listeners,
)
from ratefeed.services.asset_registry import AssetRegistry
from ratefeed.services.price_validator import is_valid_price_payload, to_price_map

IDLE = "IDLE"
CONNECTING = "CONNECTING"
OPEN = "OPEN"
CLOSING = "CLOSING"


def _default_timer_factory(delay_sec: float, callback: Callable[[], None]) -> Any:
    timer = threading.Timer(delay_sec, callback)
    timer.daemon = True
    return timer


class SubscriptionManager:
    """Owns the push socket: subscribe, tear down, reconnect.

    Every resubscribe builds a fresh socket carrying the whole subscribed id
    set. Callbacks are bound per socket and ignored once that socket is no
    longer current; listeners are detached before the old socket is closed.
    """

    def __init__(
        self,
        *,
        registry: AssetRegistry,
        ws_url: str,
        reconnect_delay_sec: float = 5.0,
        websocket_app_factory: Optional[Callable[..., Any]] = None,
        timer_factory: Optional[Callable[[float, Callable[[], None]], Any]] = None,
        thread_factory: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.ws_url = ws_url
        self.reconnect_delay_sec = reconnect_delay_sec
        self._websocket_app_factory = websocket_app_factory or default_websocket_app_factory
        self._timer_factory = timer_factory or _default_timer_factory
        self._thread_factory = thread_factory or threading.Thread
        self.clock = clock

        self._lock = threading.RLock()
        self.state = IDLE
        self.active = True
        self._socket: Any = None
        self._socket_ids: list[str] = []
        self._pending_resubscribe = False
        self._reconnect_timer: Any = None

        self.connect_attempts = 0
        self.reconnect_count = 0
        self.ws_messages = 0
        self.last_ws_message_ts: float | None = None
        self.last_error: str | None = None
        self.fatal_error: InvalidFeedPayloadError | None = None

    def request_resubscribe(self) -> None:
        with self._lock:
            if not self.active:
                return
            if self.state == CONNECTING:
                # let the attempt in flight open or fail before replacing it
                self._pending_resubscribe = True
                print("[WS][ws_resubscribe_deferred] state=CONNECTING", flush=True)
                return
            self._resubscribe()

    def _resubscribe(self) -> None:
        self._cancel_reconnect_timer()
        self._pending_resubscribe = False
        self._teardown()

        asset_ids = self.registry.subscribed_ids()
        if not asset_ids:
            self.state = IDLE
            return

        url = build_prices_url(self.ws_url, asset_ids)
        print(f"[WS][ws_connect] url={url}", flush=True)
        ws_app = self._websocket_app_factory(
            url,
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_error=self._handle_error,
            on_close=self._handle_close,
        )
        self._socket = ws_app
        self._socket_ids = asset_ids
        self.state = CONNECTING
        self.connect_attempts += 1
        self._thread_factory(target=self._run, args=(ws_app,), daemon=True, name="ratefeed-ws").start()

    def _run(self, ws_app: Any) -> None:
        with self._lock:
            if ws_app is not self._socket:
                # torn down before the thread got here
                return
        ws_app.run_forever()

    def _teardown(self) -> None:
        ws_app = self._socket
        if ws_app is None:
            return
        self.state = CLOSING
        self._socket = None
        self._socket_ids = []
        detach_listeners(ws_app)
        try:
            # do not wait for the server's close frame
            ws_app.close(timeout=0)
        except Exception as exc:
            print(f"[WS][ws_close_error] error={exc!r}", flush=True)
        self.state = IDLE

    def _cancel_reconnect_timer(self) -> None:
        timer = self._reconnect_timer
        self._reconnect_timer = None
        if timer is not None:
            timer.cancel()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            return

        def _fire() -> None:
            with self._lock:
                if self._reconnect_timer is not timer:
                    return
                self._reconnect_timer = None
                if not self.active:
                    return
                print("[WS][ws_reconnect] attempt", flush=True)
                self._resubscribe()

        self.reconnect_count += 1
        timer = self._timer_factory(self.reconnect_delay_sec, _fire)
        self._reconnect_timer = timer
        timer.start()
        print(f"[WS][ws_reconnect_scheduled] delay_sec={self.reconnect_delay_sec:g}", flush=True)

    def _fail(self, error: InvalidFeedPayloadError) -> None:
        self.fatal_error = error
        self.last_error = str(error)
        self.active = False
        self._pending_resubscribe = False
        self._cancel_reconnect_timer()
        self._teardown()
        print(f"[WS][ws_fatal] {error}", flush=True)

    def _handle_open(self, ws_app: Any) -> None:
        with self._lock:
            if ws_app is not self._socket or not self.active:
                return
            self.state = OPEN
            self.last_error = None
            print(f"[WS][ws_connect_result] status=open assets={','.join(self._socket_ids)}", flush=True)
            if self._pending_resubscribe:
                self._resubscribe()

    def _handle_message(self, ws_app: Any, raw_message: Any) -> None:
        with self._lock:
            if ws_app is not self._socket or not self.active:
                return
            payload = decode_price_message(raw_message)
            if not is_valid_price_payload(payload, self.registry.known_ids()):
                self._fail(
                    InvalidFeedPayloadError("failed to update prices: invalid response from the price feed")
                )
                return
            now = self.clock()
            self.registry.merge_prices(to_price_map(payload), now=now)
            self.ws_messages += 1
            self.last_ws_message_ts = now

    def _handle_failure(self, ws_app: Any, reason: str) -> None:
        with self._lock:
            if ws_app is not self._socket:
                return
            self.last_error = reason
            self._pending_resubscribe = False
            self._teardown()
            if self.active:
                self._schedule_reconnect()

    def _handle_error(self, ws_app: Any, error: Any) -> None:
        print(f"[WS][ws_error] {error}", flush=True)
        self._handle_failure(ws_app, str(error))

    def _handle_close(self, ws_app: Any, code: Any = None, reason: Any = None) -> None:
        print(f"[WS][ws_close] code={code} reason={reason}", flush=True)
        self._handle_failure(ws_app, f"closed code={code} reason={reason}")

    def close(self) -> None:
        with self._lock:
            self.active = False
            self._pending_resubscribe = False
            self._cancel_reconnect_timer()
            self._teardown()

    def status(self) -> dict:
        with self._lock:
            return {
                "state": self.state,
                "ws_connected": self.state == OPEN,
                "subscribed_ids": list(self._socket_ids),
                "pending_resubscribe": self._pending_resubscribe,
                "reconnect_scheduled": self._reconnect_timer is not None,
                "connect_attempts": self.connect_attempts,
                "ws_reconnect_count": self.reconnect_count,
                "ws_messages": self.ws_messages,
                "last_ws_message_ts": self.last_ws_message_ts,
                "ws_last_error": self.last_error,
                "fatal_error": str(self.fatal_error) if self.fatal_error else None,
            }
