from __future__ import annotations

import threading
from typing import Callable

from ratefeed.errors import TransportFailureError
from ratefeed.schemas.asset import AssetSnapshot
from ratefeed.services.asset_registry import AssetRegistry


class PollingRefresher:
    """Periodically pulls the REST asset list and merges it into the registry.

    Failed fetches are skipped; the next tick is the retry.
    """

    def __init__(
        self,
        *,
        registry: AssetRegistry,
        fetch_snapshot: Callable[[], AssetSnapshot],
        interval_sec: float = 20.0,
    ) -> None:
        self.registry = registry
        self.fetch_snapshot = fetch_snapshot
        self.interval_sec = interval_sec
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._metrics = {
            "runs": 0,
            "merged": 0,
            "skipped": 0,
            "discarded": 0,
        }
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def refresh_once(self) -> bool:
        self._metrics["runs"] += 1
        try:
            snapshot = self.fetch_snapshot()
        except TransportFailureError as exc:
            self.last_error = str(exc)
            self._metrics["skipped"] += 1
            print(f"[REST][poll_skip] reason={exc}", flush=True)
            return False

        if self._stop_event.is_set():
            # fetch outlived stop(); the registry may already be discarded
            self._metrics["discarded"] += 1
            return False

        written = self.registry.merge_snapshot(snapshot)
        self.last_error = None
        self._metrics["merged"] += written
        return True

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_sec):
            try:
                self.refresh_once()
            except Exception as exc:
                self.last_error = str(exc)
                print(f"[REST][poll_error] error={exc!r}", flush=True)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="ratefeed-poller")
        self._thread.start()
        print(f"[REST][poll_start] interval_sec={self.interval_sec:g}", flush=True)

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def metrics(self) -> dict:
        return {
            **self._metrics,
            "running": self.running,
            "last_error": self.last_error,
        }
