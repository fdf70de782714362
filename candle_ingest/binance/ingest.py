from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .api import Interval, Kline, fetch_candlesticks
from .dates import normalize_date
from .db import ensure_tables, store_candlesticks
from .errors import ConfigError
from .exchange_info import ExchangeInfoStore
from .jobs import IngestJob, JobQueue
from .persistence import PersistConfig, snapshot_name, write_raw_json


logger = logging.getLogger(__name__)

SYMBOL_CHUNK_SIZE = 65
ALL_SYMBOLS = "ALL"

FetchFn = Callable[[str, Interval, Optional[int], Optional[int]], List[Kline]]


def select_chunk(symbols: Sequence[str], chunk: Optional[int], size: int = SYMBOL_CHUNK_SIZE) -> List[str]:
    """Return the 0-based chunk of `size` symbols, or all symbols when chunk is None."""
    if chunk is None:
        return list(symbols)
    if chunk < 0:
        raise ValueError(f"chunk must be >= 0, got {chunk}")
    return list(symbols[chunk * size : (chunk + 1) * size])


class CandleIngestor:
    """Fetch-and-store loop over one or more symbols.

    Each symbol is paged forward from its start bound: fetch [curr, end], store,
    then continue from the open time of the last row returned. The boundary row
    is fetched again on the next page and simply re-upserted.
    """

    def __init__(
        self,
        db_path: Path,
        exchange_info: ExchangeInfoStore,
        fetch: FetchFn = fetch_candlesticks,
        queue: Optional[JobQueue] = None,
        archive: Optional[PersistConfig] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.db_path = db_path
        self.exchange_info = exchange_info
        self.fetch = fetch
        self.queue = queue
        self.archive = archive
        self.now = now
        ensure_tables(db_path)

    def _now(self) -> Optional[datetime]:
        return self.now() if self.now is not None else None

    def resolve_symbols(self, symbols: Union[str, Sequence[str]], chunk: Optional[int] = None) -> List[str]:
        symbols = [symbols] if isinstance(symbols, str) else list(symbols)
        if symbols and symbols[0].upper() == ALL_SYMBOLS:
            symbols = self.exchange_info.all_symbols()
        return select_chunk(symbols, chunk)

    def run(
        self,
        symbols: Union[str, Sequence[str]],
        interval: Interval | str,
        start: Union[str, int, None] = None,
        end: Union[str, int, None] = None,
        use_queue: bool = False,
        chunk: Optional[int] = None,
    ) -> Union[int, bool]:
        """Validate bounds, then either ingest inline or queue one job per symbol.

        Returns the number of candles stored, or True once jobs are queued.
        """
        interval = Interval(interval)
        now = self._now()
        start_ms = normalize_date(start, "from", now)
        end_ms = normalize_date(end, "to", now)
        resolved = self.resolve_symbols(symbols, chunk)

        if use_queue:
            if self.queue is None:
                raise ConfigError("queued mode requested but no job queue is configured")
            for symbol in resolved:
                self.queue.dispatch(IngestJob([symbol], interval.value, start_ms, end_ms))
            return True

        return self.run_window(resolved, interval, start_ms, end_ms)

    def run_window(
        self,
        symbols: Sequence[str],
        interval: Interval | str,
        start_ms: Optional[int],
        end_ms: Optional[int],
    ) -> int:
        """Ingest already-normalized bounds for each symbol in turn."""
        interval = Interval(interval)
        total = 0
        for symbol in symbols:
            total += self._run_symbol(symbol, interval, start_ms, end_ms)
        logger.info("Stored %d candlesticks_%s", total, interval.value)
        return total

    def _run_symbol(self, symbol: str, interval: Interval, start_ms: Optional[int], end_ms: Optional[int]) -> int:
        total = 0
        curr = start_ms
        while True:
            klines = self.fetch(symbol, interval, curr, end_ms)
            if self.archive is not None and klines:
                name = snapshot_name(symbol, interval.value, curr, klines[-1].open_time_ms)
                write_raw_json(self.archive, name, [k.to_row() for k in klines])
            stored, last = store_candlesticks(self.db_path, symbol, interval, klines, now=self._now())
            total += stored
            logger.debug("Stored %d candlesticks_%s: %s (last=%s)", stored, interval.value, symbol, last)

            if last is None or (curr is not None and last <= curr):
                break
            if end_ms is not None and last >= end_ms:
                break
            curr = last
        return total
