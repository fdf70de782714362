from __future__ import annotations

import json

import pytest

from candle_ingest.binance.exchange_info import EXCLUDED_SYMBOLS, ExchangeInfoStore
from candle_ingest.binance.persistence import PersistConfig


def _symbol(symbol: str, base: str, quote: str, notional_type: str = "MIN_NOTIONAL"):
    return {
        "symbol": symbol,
        "baseAsset": base,
        "quoteAsset": quote,
        "filters": [
            {"filterType": "PRICE_FILTER", "minPrice": "0.01000000", "maxPrice": "1000000.00", "tickSize": "0.01000000"},
            {"filterType": "LOT_SIZE", "minQty": "0.00001000", "maxQty": "9000.00", "stepSize": "0.00001000"},
            {"filterType": notional_type, "minNotional": "5.00000000"},
        ],
    }


PAYLOAD = {
    "symbols": [
        _symbol("ETHUSDT", "ETH", "USDT"),
        _symbol("BTCUSDT", "BTC", "USDT", notional_type="NOTIONAL"),
        _symbol(next(iter(EXCLUDED_SYMBOLS)), "X", "Y"),
    ]
}


@pytest.fixture
def store(tmp_path):
    return ExchangeInfoStore(tmp_path / "meta.duckdb", fetch=lambda: PAYLOAD)


def test_store_skips_excluded(store):
    assert store.store(PAYLOAD) == 2
    assert store.all_symbols() == ["BTCUSDT", "ETHUSDT"]


def test_filters_looked_up_by_type(store):
    store.store(PAYLOAD)
    df = store.read().set_index("symbol")
    assert df.loc["ETHUSDT", "base_asset"] == "ETH"
    assert float(df.loc["ETHUSDT", "tick_size"]) == 0.01
    assert float(df.loc["BTCUSDT", "step_size"]) == 0.00001
    assert float(df.loc["BTCUSDT", "min_notional"]) == 5.0


def test_missing_filters_store_null(store):
    store.store({"symbols": [{"symbol": "NEWUSDT", "baseAsset": "NEW", "quoteAsset": "USDT", "filters": []}]})
    df = store.read().set_index("symbol")
    assert df["min_price"].isna().all()


def test_refresh_overwrites(store):
    store.store(PAYLOAD)
    changed = {"symbols": [dict(_symbol("ETHUSDT", "ETH", "USDC"))]}
    store.fetch = lambda: changed
    assert store.refresh() == 1
    df = store.read().set_index("symbol")
    assert df.loc["ETHUSDT", "quote_asset"] == "USDC"
    assert len(df) == 2


def test_refresh_archives_raw_payload(tmp_path):
    archive = PersistConfig(tmp_path / "raw", "exchange")
    store = ExchangeInfoStore(tmp_path / "meta.duckdb", fetch=lambda: PAYLOAD, archive=archive)
    store.refresh()

    files = list((tmp_path / "raw" / "exchange").glob("*_exchange_info.json"))
    assert len(files) == 1
    assert json.loads(files[0].read_text()) == PAYLOAD
