from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import duckdb  # type: ignore
import pandas as pd

from .api import Interval, Kline


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandleTable:
    name: str
    interval: Interval


# One table per interval, fixed at import time.
CANDLE_TABLES: Dict[Interval, CandleTable] = {
    iv: CandleTable(f"candlesticks_{iv.value}", iv) for iv in Interval
}

EXCHANGE_INFO_TABLE = "exchange_info"
JOBS_TABLE = "ingest_jobs"


def candle_table(interval: Interval | str) -> CandleTable:
    return CANDLE_TABLES[Interval(interval)]


def _connect(db_path: Path):
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path))


def ensure_tables(db_path: Path) -> None:
    con = _connect(db_path)
    try:
        for table in CANDLE_TABLES.values():
            con.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table.name} (
                  symbol VARCHAR NOT NULL,
                  timestamp TIMESTAMP NOT NULL,
                  open_time_ms BIGINT NOT NULL,
                  open DECIMAL(38, 12),
                  high DECIMAL(38, 12),
                  low DECIMAL(38, 12),
                  close DECIMAL(38, 12),
                  volume DECIMAL(38, 12),
                  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                  PRIMARY KEY (symbol, timestamp)
                );
                """
            )
        con.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {EXCHANGE_INFO_TABLE} (
              symbol VARCHAR PRIMARY KEY,
              base_asset VARCHAR,
              quote_asset VARCHAR,
              min_price DECIMAL(38, 12),
              tick_size DECIMAL(38, 12),
              min_qty DECIMAL(38, 12),
              step_size DECIMAL(38, 12),
              min_notional DECIMAL(38, 12),
              updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        con.execute(f"CREATE SEQUENCE IF NOT EXISTS {JOBS_TABLE}_id_seq START 1;")
        con.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {JOBS_TABLE} (
              id BIGINT PRIMARY KEY DEFAULT nextval('{JOBS_TABLE}_id_seq'),
              symbols VARCHAR NOT NULL,
              kline_interval VARCHAR NOT NULL,
              start_ms BIGINT,
              end_ms BIGINT,
              status VARCHAR NOT NULL DEFAULT 'pending',
              stored BIGINT,
              error VARCHAR,
              created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              finished_at TIMESTAMP
            );
            """
        )
    finally:
        con.close()


def current_minute_bucket(now: Optional[datetime] = None) -> int:
    """Unix seconds of the start of the still-running minute."""
    now = now or datetime.now(timezone.utc)
    return int(now.timestamp()) // 60 * 60


def is_still_open(k: Kline, now: Optional[datetime] = None) -> bool:
    """True while the kline's bucket has not closed yet, for any interval."""
    now = now or datetime.now(timezone.utc)
    now_ms = int(now.timestamp() * 1000)
    return k.close_time_ms >= now_ms or k.open_time_ms // 1000 == current_minute_bucket(now)


def store_candlesticks(
    db_path: Path,
    symbol: str,
    interval: Interval | str,
    klines: Iterable[Kline],
    now: Optional[datetime] = None,
) -> Tuple[int, Optional[int]]:
    """Upsert klines keyed by (symbol, open datetime).

    Rows whose bucket has not closed yet (close time at or after now, or the
    running minute) are skipped: their values are provisional and will be
    picked up by a later fetch.

    Returns (distinct keys written, raw open_time_ms of the last input row). The last
    open time is reported even when that row was skipped; it is None only for
    empty input.
    """
    table = candle_table(interval)
    now = now or datetime.now(timezone.utc)
    written: set[int] = set()
    last_open_ms: Optional[int] = None

    con = _connect(db_path)
    try:
        con.execute("SET TimeZone='UTC';")
        for k in klines:
            last_open_ms = k.open_time_ms
            bucket = k.open_time_ms // 1000
            if is_still_open(k, now):
                logger.debug("Skipping %s %s open bucket %s", symbol, table.interval.value, bucket)
                continue
            ts = pd.to_datetime(bucket, unit="s").to_pydatetime()
            con.execute(
                f"""
                INSERT INTO {table.name} (symbol, timestamp, open_time_ms, open, high, low, close, volume)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (symbol, timestamp) DO UPDATE SET
                  open_time_ms = excluded.open_time_ms,
                  open = excluded.open,
                  high = excluded.high,
                  low = excluded.low,
                  close = excluded.close,
                  volume = excluded.volume,
                  updated_at = now();
                """,
                [symbol, ts, k.open_time_ms, k.open, k.high, k.low, k.close, k.volume],
            )
            written.add(bucket)
    finally:
        con.close()
    return len(written), last_open_ms


def read_candles(db_path: Path, symbol: str, interval: Interval | str) -> pd.DataFrame:
    table = candle_table(interval)
    con = _connect(db_path)
    try:
        con.execute("SET TimeZone='UTC';")
        q = f"""
            SELECT timestamp, open_time_ms, open, high, low, close, volume
            FROM {table.name}
            WHERE symbol = ?
            ORDER BY timestamp
        """
        return con.execute(q, [symbol]).fetch_df()
    finally:
        con.close()


def coverage_stats(db_path: Path, symbol: str, interval: Interval | str) -> Optional[tuple[pd.Timestamp, pd.Timestamp, int]]:
    table = candle_table(interval)
    con = _connect(db_path)
    try:
        q = f"SELECT MIN(timestamp), MAX(timestamp), COUNT(*) FROM {table.name} WHERE symbol = ?"
        res = con.execute(q, [symbol]).fetchone()
        if res is None or res[0] is None:
            return None
        return pd.Timestamp(res[0]), pd.Timestamp(res[1]), int(res[2])
    finally:
        con.close()
