from __future__ import annotations

import json
from typing import Any, Iterable


def build_prices_url(base_url: str, asset_ids: Iterable[str]) -> str:
    """CoinCap price stream URL for the given asset ids, e.g. ``...prices?assets=bitcoin,ethereum``."""
    return f"{base_url}?assets={','.join(asset_ids)}"


def decode_price_message(raw: Any) -> Any:
    """Decode a raw websocket frame. Returns ``None`` when the frame is not JSON."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str):
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def default_websocket_app_factory(*args: Any, **kwargs: Any) -> Any:
    from websocket import WebSocketApp

    return WebSocketApp(*args, **kwargs)


def _close_on_open(ws_app: Any) -> None:
    ws_app.close(timeout=0)


def detach_listeners(ws_app: Any) -> None:
    """Unregister every callback so a closing socket cannot deliver events.

    ``run_forever`` resets ``keep_running``, so a close issued before the run
    thread starts is lost; a socket that still completes its handshake is
    closed from its open callback.
    """
    ws_app.on_open = _close_on_open
    ws_app.on_message = None
    ws_app.on_error = None
    ws_app.on_close = None
