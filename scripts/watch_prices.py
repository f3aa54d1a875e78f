from __future__ import annotations

import argparse
from pathlib import Path
import sys
import time

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from ratefeed.errors import RateFeedError
from ratefeed.services.rate_api import connect


def main() -> None:
    parser = argparse.ArgumentParser(description="Print live prices from the rate feed.")
    parser.add_argument("symbols", nargs="+", help="Tickers to watch, e.g. BTC ETH XRP.")
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between prints.")
    parser.add_argument("--rounds", type=int, default=0, help="Stop after N rounds (0 runs forever).")
    args = parser.parse_args()

    rate_api = connect()
    rounds = 0
    try:
        while args.rounds == 0 or rounds < args.rounds:
            for symbol in args.symbols:
                try:
                    print(f"{symbol.upper()} {rate_api.get_price(symbol.upper())}")
                except RateFeedError as exc:
                    print(f"{symbol.upper()} unavailable ({exc.code}): {exc}")
            rounds += 1
            time.sleep(args.interval)
    except KeyboardInterrupt:
        pass
    finally:
        rate_api.disconnect()


if __name__ == "__main__":
    main()
