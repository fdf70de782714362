from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from .api import fetch_exchange_info
from .db import EXCHANGE_INFO_TABLE, _connect, ensure_tables
from .persistence import PersistConfig, now_utc_run_id, write_raw_json


logger = logging.getLogger(__name__)

# Symbols never written to the metadata table.
EXCLUDED_SYMBOLS = frozenset({"123456"})


def _filter_value(filters: List[Dict[str, Any]], filter_types: tuple[str, ...], key: str) -> Optional[Decimal]:
    for f in filters:
        if f.get("filterType") in filter_types and f.get(key) is not None:
            return Decimal(str(f[key]))
    return None


class ExchangeInfoStore:
    """Symbol metadata kept in DuckDB and refreshed wholesale from the exchange."""

    def __init__(
        self,
        db_path: Path,
        fetch: Callable[[], Dict[str, Any]] = fetch_exchange_info,
        archive: Optional[PersistConfig] = None,
    ):
        self.db_path = db_path
        self.fetch = fetch
        self.archive = archive
        ensure_tables(db_path)

    def refresh(self) -> int:
        payload = self.fetch()
        if self.archive is not None:
            out = write_raw_json(self.archive, f"{now_utc_run_id()}_exchange_info", payload)
            logger.info("Saved raw exchange info to %s", out)
        return self.store(payload)

    def store(self, payload: Dict[str, Any]) -> int:
        saved = 0
        con = _connect(self.db_path)
        try:
            for s in payload.get("symbols", []):
                if s["symbol"] in EXCLUDED_SYMBOLS:
                    continue
                filters = s.get("filters", [])
                con.execute(
                    f"""
                    INSERT INTO {EXCHANGE_INFO_TABLE}
                      (symbol, base_asset, quote_asset, min_price, tick_size, min_qty, step_size, min_notional)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (symbol) DO UPDATE SET
                      base_asset = excluded.base_asset,
                      quote_asset = excluded.quote_asset,
                      min_price = excluded.min_price,
                      tick_size = excluded.tick_size,
                      min_qty = excluded.min_qty,
                      step_size = excluded.step_size,
                      min_notional = excluded.min_notional,
                      updated_at = now();
                    """,
                    [
                        s["symbol"],
                        s.get("baseAsset"),
                        s.get("quoteAsset"),
                        _filter_value(filters, ("PRICE_FILTER",), "minPrice"),
                        _filter_value(filters, ("PRICE_FILTER",), "tickSize"),
                        _filter_value(filters, ("LOT_SIZE",), "minQty"),
                        _filter_value(filters, ("LOT_SIZE",), "stepSize"),
                        _filter_value(filters, ("MIN_NOTIONAL", "NOTIONAL"), "minNotional"),
                    ],
                )
                saved += 1
        finally:
            con.close()
        logger.info("Stored exchange info for %d symbols", saved)
        return saved

    def all_symbols(self) -> List[str]:
        con = _connect(self.db_path)
        try:
            rows = con.execute(f"SELECT symbol FROM {EXCHANGE_INFO_TABLE} ORDER BY symbol").fetchall()
        finally:
            con.close()
        return [r[0] for r in rows]

    def read(self) -> pd.DataFrame:
        con = _connect(self.db_path)
        try:
            return con.execute(f"SELECT * EXCLUDE (updated_at) FROM {EXCHANGE_INFO_TABLE} ORDER BY symbol").fetch_df()
        finally:
            con.close()
