from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .api import Interval
from .errors import InvalidDateFormat, OutOfRangeDate
from .exchange_info import ExchangeInfoStore
from .ingest import CandleIngestor
from .jobs import DuckDBJobQueue, drain
from .persistence import PersistConfig


DEFAULT_INTERVAL = "1m"


@dataclass
class RunConfig:
    command: str
    duckdb_path: Path
    symbol: Optional[str] = None
    interval: str = DEFAULT_INTERVAL
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    chunk: Optional[int] = None
    use_queue: bool = False
    persist_dir: Optional[Path] = None
    dataset_slug: str = "binance_raw"
    debug: bool = False


def _archive(cfg: RunConfig) -> Optional[PersistConfig]:
    if cfg.persist_dir is None:
        return None
    return PersistConfig(cfg.persist_dir, cfg.dataset_slug)


def run_once(cfg: RunConfig) -> int:
    archive = _archive(cfg)
    exchange_info = ExchangeInfoStore(cfg.duckdb_path, archive=archive)

    if cfg.command == "update-exchange-info":
        saved = exchange_info.refresh()
        print(f"{saved} symbols fetched & saved")
        return 0

    queue = DuckDBJobQueue(cfg.duckdb_path)
    ingestor = CandleIngestor(cfg.duckdb_path, exchange_info, queue=queue, archive=archive)

    if cfg.command == "drain-queue":
        done, failed = drain(queue, ingestor)
        print(f"jobs done={done} failed={failed}")
        return 0 if failed == 0 else 1

    result = ingestor.run(
        cfg.symbol,
        cfg.interval,
        cfg.date_from,
        cfg.date_to,
        use_queue=cfg.use_queue,
        chunk=cfg.chunk,
    )
    if cfg.use_queue:
        print("candlestick jobs queued")
    else:
        print(f"{result} candlesticks fetched & saved")
    return 0


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    p = argparse.ArgumentParser(description="Binance candlestick and exchange info ingestion into DuckDB")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--duckdb", type=Path, required=True, help="Path to DuckDB file")
    common.add_argument("--persist-dir", type=Path, default=None, help="Archive raw API payloads under this directory")
    common.add_argument("--dataset", type=str, default="binance_raw", help="Dataset slug directory for raw payloads")
    common.add_argument("--debug", action="store_true", help="Verbose logging")

    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("update-candlesticks", parents=[common], help="Fetch and store candlestick data")
    c.add_argument("symbol", help='e.g. "ETHUSDT" (or "ALL" for every known symbol)')
    c.add_argument("interval", nargs="?", default=DEFAULT_INTERVAL, choices=[iv.value for iv in Interval])
    c.add_argument("--from", dest="date_from", default=None, help="unix timestamp (s or ms) or date string")
    c.add_argument("--to", dest="date_to", default=None, help="unix timestamp (s or ms) or date string")
    c.add_argument("--chunk", type=int, default=None, help="0-based chunk of symbols to process")
    c.add_argument("--queue", action="store_true", help="Queue one job per symbol instead of running inline")

    sub.add_parser("update-exchange-info", parents=[common], help="Refresh symbol metadata")
    sub.add_parser("drain-queue", parents=[common], help="Run pending queued jobs")

    args = p.parse_args(argv)
    return RunConfig(
        command=args.command,
        duckdb_path=args.duckdb,
        symbol=getattr(args, "symbol", None),
        interval=getattr(args, "interval", DEFAULT_INTERVAL),
        date_from=getattr(args, "date_from", None),
        date_to=getattr(args, "date_to", None),
        chunk=getattr(args, "chunk", None),
        use_queue=bool(getattr(args, "queue", False)),
        persist_dir=args.persist_dir,
        dataset_slug=args.dataset,
        debug=args.debug,
    )


def main(argv: Optional[list[str]] = None) -> int:
    cfg = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if cfg.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run_once(cfg)
    except (InvalidDateFormat, OutOfRangeDate, ValueError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 2
    except Exception as e:  # surface clear error message
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
