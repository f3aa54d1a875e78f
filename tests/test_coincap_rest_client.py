import unittest
from decimal import Decimal
from unittest.mock import MagicMock

import requests

from ratefeed.errors import TransportFailureError
from ratefeed.integrations.coincap_rest import CoinCapRestClient


def _session_returning(payload):
    session = MagicMock()
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    session.get.return_value = response
    return session


class TestCoinCapRestClient(unittest.TestCase):
    def test_fetch_assets_uses_asset_list_contract(self):
        session = _session_returning({"data": [], "timestamp": 1700000000000})
        client = CoinCapRestClient(
            "https://example.test/v2/assets",
            session=session,
            timeout=5.0,
            clock=lambda: 1700000001.0,
        )

        client.fetch_assets()

        session.get.assert_called_once_with("https://example.test/v2/assets", timeout=5.0)

    def test_fetch_assets_parses_rows_into_decimal_prices(self):
        session = _session_returning(
            {
                "data": [
                    {"id": "bitcoin", "symbol": "BTC", "priceUsd": "50000.123456789012345"},
                    {"id": "ethereum", "symbol": "ETH", "priceUsd": "2000.5"},
                ],
                "timestamp": 1700000000000,
            }
        )
        client = CoinCapRestClient(session=session, clock=lambda: 1700000001.0)

        snapshot = client.fetch_assets()

        self.assertEqual([a.symbol for a in snapshot.assets], ["BTC", "ETH"])
        self.assertEqual(snapshot.assets[0].id, "bitcoin")
        self.assertEqual(snapshot.assets[0].price, Decimal("50000.123456789012345"))
        self.assertFalse(snapshot.assets[0].subscribed)
        self.assertEqual(snapshot.timestamp, 1700000000.0)
        self.assertEqual(snapshot.assets[1].updated_at, 1700000000.0)

    def test_server_clock_ahead_of_local_is_clamped_to_local_time(self):
        session = _session_returning(
            {
                "data": [{"id": "bitcoin", "symbol": "BTC", "priceUsd": "50000"}],
                "timestamp": 1700000060000,
            }
        )
        client = CoinCapRestClient(session=session, clock=lambda: 1700000000.0)

        snapshot = client.fetch_assets()

        self.assertEqual(snapshot.timestamp, 1700000000.0)
        self.assertEqual(snapshot.assets[0].updated_at, 1700000000.0)

    def test_rows_without_usable_price_or_duplicate_symbol_are_skipped(self):
        session = _session_returning(
            {
                "data": [
                    {"id": "bitcoin", "symbol": "BTC", "priceUsd": "50000"},
                    {"id": "bitcoin-clone", "symbol": "BTC", "priceUsd": "1"},
                    {"id": "nothing", "symbol": "NIL", "priceUsd": None},
                    {"id": "broken", "symbol": "BRK", "priceUsd": "abc"},
                    "not-a-row",
                ],
                "timestamp": 1700000000000,
            }
        )
        client = CoinCapRestClient(session=session, clock=lambda: 1700000001.0)

        snapshot = client.fetch_assets()

        self.assertEqual([(a.id, a.symbol) for a in snapshot.assets], [("bitcoin", "BTC")])

    def test_http_error_is_wrapped_as_transport_failure(self):
        session = MagicMock()
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("502 Server Error")
        session.get.return_value = response
        client = CoinCapRestClient(session=session)

        with self.assertRaises(TransportFailureError):
            client.fetch_assets()

    def test_connection_error_is_wrapped_as_transport_failure(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("connection refused")
        client = CoinCapRestClient(session=session)

        with self.assertRaises(TransportFailureError) as ctx:
            client.fetch_assets()

        self.assertTrue(ctx.exception.retryable)

    def test_malformed_body_is_transport_failure(self):
        session = MagicMock()
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.side_effect = ValueError("Expecting value")
        session.get.return_value = response
        client = CoinCapRestClient(session=session)

        with self.assertRaises(TransportFailureError):
            client.fetch_assets()

        with self.assertRaises(TransportFailureError):
            CoinCapRestClient(session=_session_returning({"error": "oops"})).fetch_assets()


if __name__ == "__main__":
    unittest.main()
