from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .errors import RemoteFetchFailure


logger = logging.getLogger(__name__)

BINANCE_API = "https://api.binance.com"
USER_AGENT = "candle-ingest/1.0"
DEFAULT_LIMIT = 1000


class Interval(str, Enum):
    M1 = "1m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H2 = "2h"
    H4 = "4h"
    H6 = "6h"
    H8 = "8h"
    H12 = "12h"
    D1 = "1d"


@dataclass(frozen=True)
class Kline:
    open_time_ms: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    close_time_ms: int
    raw: Tuple[Any, ...] = field(default=(), compare=False, repr=False)

    def to_row(self) -> List[Any]:
        """The row as the API sent it, or its core fields when built locally."""
        if self.raw:
            return list(self.raw)
        return [
            self.open_time_ms,
            str(self.open),
            str(self.high),
            str(self.low),
            str(self.close),
            str(self.volume),
            self.close_time_ms,
        ]


def _get_json(path: str, params: Dict[str, Any]) -> Any:
    qs = urlencode({k: v for k, v in params.items() if v is not None})
    url = f"{BINANCE_API}{path}" + (f"?{qs}" if qs else "")
    req = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urlopen(req, timeout=15) as resp:
            return json.loads(resp.read())
    except (URLError, TimeoutError, ValueError) as e:
        raise RemoteFetchFailure(url, e) from e


def _parse_row(row: List[Any]) -> Kline:
    # [ openTime, open, high, low, close, volume, closeTime, quoteAssetVolume,
    #   numberOfTrades, takerBuyBaseAssetVolume, takerBuyQuoteAssetVolume, ignore ]
    return Kline(
        open_time_ms=int(row[0]),
        open=Decimal(str(row[1])),
        high=Decimal(str(row[2])),
        low=Decimal(str(row[3])),
        close=Decimal(str(row[4])),
        volume=Decimal(str(row[5])),
        close_time_ms=int(row[6]),
        raw=tuple(row),
    )


def fetch_candlesticks(
    symbol: str,
    interval: Interval | str,
    start_ms: Optional[int] = None,
    end_ms: Optional[int] = None,
    limit: int = DEFAULT_LIMIT,
) -> List[Kline]:
    """Fetch klines for [start_ms, end_ms] from the Binance spot API.

    Either bound may be None. Rows come back in ascending open-time order and
    are returned as the API ordered them.
    """
    interval = Interval(interval)
    logger.info("Fetching %s %s candlesticks %s..%s", symbol, interval.value, start_ms, end_ms)
    payload = _get_json(
        "/api/v3/klines",
        {"symbol": symbol, "interval": interval.value, "startTime": start_ms, "endTime": end_ms, "limit": limit},
    )
    if not isinstance(payload, list):
        raise RemoteFetchFailure("/api/v3/klines", ValueError(f"unexpected payload: {payload!r}"))
    try:
        klines = [_parse_row(row) for row in payload]
    except (IndexError, TypeError, ValueError, InvalidOperation) as e:
        raise RemoteFetchFailure("/api/v3/klines", e) from e
    logger.info("%d candlesticks fetched.", len(klines))
    return klines


def fetch_exchange_info() -> Dict[str, Any]:
    payload = _get_json("/api/v3/exchangeInfo", {})
    if not isinstance(payload, dict) or not isinstance(payload.get("symbols"), list):
        raise RemoteFetchFailure("/api/v3/exchangeInfo", ValueError("payload has no 'symbols' list"))
    for s in payload["symbols"]:
        if not isinstance(s, dict) or not isinstance(s.get("symbol"), str):
            raise RemoteFetchFailure("/api/v3/exchangeInfo", ValueError(f"malformed symbol entry: {s!r}"))
    return payload

