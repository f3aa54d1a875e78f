import threading
import unittest
from decimal import Decimal

from ratefeed.errors import TransportFailureError
from ratefeed.schemas.asset import Asset, AssetSnapshot
from ratefeed.services.asset_registry import AssetRegistry
from ratefeed.services.polling_refresher import PollingRefresher


def _btc_snapshot(ts, price):
    return AssetSnapshot(
        assets=[Asset(id="bitcoin", symbol="BTC", price=Decimal(price), updated_at=ts)],
        timestamp=ts,
    )


class PollingRefresherTest(unittest.TestCase):
    def test_refresh_once_merges_snapshot(self):
        registry = AssetRegistry()
        refresher = PollingRefresher(registry=registry, fetch_snapshot=lambda: _btc_snapshot(1000.0, "50000"))

        self.assertTrue(refresher.refresh_once())

        self.assertEqual(registry.lookup("BTC").price, Decimal("50000"))
        metrics = refresher.metrics()
        self.assertEqual(metrics["runs"], 1)
        self.assertEqual(metrics["merged"], 1)
        self.assertIsNone(metrics["last_error"])

    def test_transport_failure_skips_cycle_and_keeps_registry(self):
        registry = AssetRegistry()
        registry.merge_snapshot(_btc_snapshot(1000.0, "50000"))

        def fetch():
            raise TransportFailureError("asset list request failed: 503")

        refresher = PollingRefresher(registry=registry, fetch_snapshot=fetch)

        self.assertFalse(refresher.refresh_once())

        self.assertEqual(registry.lookup("BTC").price, Decimal("50000"))
        metrics = refresher.metrics()
        self.assertEqual(metrics["skipped"], 1)
        self.assertIn("503", metrics["last_error"])

    def test_failure_then_success_recovers_on_next_tick(self):
        registry = AssetRegistry()
        outcomes = [TransportFailureError("timeout"), _btc_snapshot(1020.0, "50500")]

        def fetch():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        refresher = PollingRefresher(registry=registry, fetch_snapshot=fetch)

        self.assertFalse(refresher.refresh_once())
        self.assertTrue(refresher.refresh_once())
        self.assertEqual(registry.lookup("BTC").price, Decimal("50500"))
        self.assertIsNone(refresher.last_error)

    def test_fetch_completing_after_stop_is_discarded(self):
        registry = AssetRegistry()
        registry.merge_snapshot(_btc_snapshot(1000.0, "50000"))
        holder = {}

        def fetch():
            holder["refresher"].stop()
            return _btc_snapshot(1020.0, "1")

        refresher = PollingRefresher(registry=registry, fetch_snapshot=fetch)
        holder["refresher"] = refresher

        self.assertFalse(refresher.refresh_once())

        self.assertEqual(registry.lookup("BTC").price, Decimal("50000"))
        self.assertEqual(refresher.metrics()["discarded"], 1)

    def test_background_loop_polls_until_stopped(self):
        registry = AssetRegistry()
        polled = threading.Event()
        calls = {"count": 0}

        def fetch():
            calls["count"] += 1
            if calls["count"] >= 2:
                # the first tick has been merged by now
                polled.set()
            return _btc_snapshot(1000.0 + calls["count"], "50000")

        refresher = PollingRefresher(registry=registry, fetch_snapshot=fetch, interval_sec=0.01)
        refresher.start()
        try:
            self.assertTrue(polled.wait(1.0), "poller did not fetch")
            self.assertTrue(refresher.metrics()["running"])
        finally:
            refresher.stop()

        self.assertFalse(refresher.running)
        self.assertIsNotNone(registry.lookup("BTC"))
        refresher.stop()


if __name__ == "__main__":
    unittest.main()
