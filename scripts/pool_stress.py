#!/usr/bin/env python3
"""
Stress one pool: N workers check out a connection in parallel and hold it.

To see the pool cap in action:
  python scripts/pool_stress.py --workers 20 --max-size 2 --hold 1.0 --acquire-timeout 0.5

Expected: a few workers succeed, the rest hit PoolExhausted, and the peak
in-use count never exceeds --max-size.

Usage:
  python scripts/pool_stress.py [--workers N] [--max-size N] [--hold SEC] [--path FILE]
  Or set env: WORKERS, MAX_SIZE
"""

import argparse
import os
import sys
import tempfile
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from txpool import Pool, PoolConfig, PoolExhausted, TxPoolError, configure_logging
from txpool.core.pool import SQLiteAdapter

OK = "ok"
EXHAUSTED = "exhausted"
ERROR = "error"


class PeakTracker:
    """Highest number of connections seen checked out at once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = 0
        self.peak = 0

    def enter(self) -> None:
        with self._lock:
            self._current += 1
            self.peak = max(self.peak, self._current)

    def leave(self) -> None:
        with self._lock:
            self._current -= 1


def do_checkout(pool: Pool, hold: float, tracker: PeakTracker, index: int) -> tuple[int, str]:
    """Acquire, run SELECT 1, hold, release; return (index, outcome)."""
    try:
        with pool.connection() as conn:
            tracker.enter()
            try:
                conn.execute("SELECT 1")
                time.sleep(hold)
            finally:
                tracker.leave()
        return (index, OK)
    except PoolExhausted:
        return (index, EXHAUSTED)
    except TxPoolError:
        return (index, ERROR)


def stress(
    pool: Pool, *, workers: int, hold: float, verbose: bool = True
) -> dict[str, int]:
    tracker = PeakTracker()
    results: list[tuple[int, str]] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(do_checkout, pool, hold, tracker, i): i
            for i in range(1, workers + 1)
        }
        for fut in as_completed(futures):
            idx, outcome = fut.result()
            results.append((idx, outcome))
            if verbose:
                print(f"{idx} {outcome}")

    return {
        OK: sum(1 for _, o in results if o == OK),
        EXHAUSTED: sum(1 for _, o in results if o == EXHAUSTED),
        ERROR: sum(1 for _, o in results if o == ERROR),
        "peak_in_use": tracker.peak,
    }


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fire N concurrent checkouts at one pool and report the outcome."
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.environ.get("WORKERS", "20")),
        help="Number of concurrent workers (default 20)",
    )
    parser.add_argument(
        "--max-size",
        type=int,
        default=int(os.environ.get("MAX_SIZE", "2")),
        help="Pool max size (default 2)",
    )
    parser.add_argument(
        "--hold", type=float, default=0.5, help="Seconds each worker holds its connection"
    )
    parser.add_argument(
        "--acquire-timeout",
        type=float,
        default=0.2,
        help="Seconds a worker waits for a connection (default 0.2)",
    )
    parser.add_argument("--path", help="SQLite database file (default: a temp file)")
    parser.add_argument("--quiet", action="store_true", help="Only print the summary")
    args = parser.parse_args(argv)

    configure_logging()
    path = args.path or os.path.join(tempfile.mkdtemp(prefix="txpool-"), "stress.db")
    config = PoolConfig.from_settings(
        max_size=args.max_size, min_idle=0, acquire_timeout=args.acquire_timeout
    )

    print(f"Testing {args.workers} concurrent checkouts against max_size={args.max_size}")
    print("---")
    with Pool(SQLiteAdapter(path=path), config) as pool:
        summary = stress(pool, workers=args.workers, hold=args.hold, verbose=not args.quiet)
    print("---")
    print(
        f"Done. ok={summary[OK]} exhausted={summary[EXHAUSTED]} "
        f"errors={summary[ERROR]} peak_in_use={summary['peak_in_use']}"
    )
    print("exhausted = no connection within --acquire-timeout.")
    return 0 if summary[ERROR] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
