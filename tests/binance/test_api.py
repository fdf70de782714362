from __future__ import annotations

import io
import json
from decimal import Decimal
from urllib.error import URLError
from urllib.parse import parse_qs, urlparse

import pytest

import candle_ingest.binance.api as api_mod
from candle_ingest.binance.api import Interval, Kline, fetch_candlesticks, fetch_exchange_info
from candle_ingest.binance.errors import RemoteFetchFailure


def _row(open_ms: int, o: str):
    return [open_ms, o, "101.5", "99.5", "100.25", "12.34", open_ms + 59_999, "0", 7, "0", "0", "0"]


class _FakeUrlopen:
    def __init__(self, payload):
        self.payload = payload
        self.urls: list[str] = []

    def __call__(self, req, timeout=None):
        self.urls.append(req.full_url)
        return io.BytesIO(json.dumps(self.payload).encode())


def test_fetch_candlesticks_parses_rows(monkeypatch):
    fake = _FakeUrlopen([_row(1704067200000, "100.0"), _row(1704067260000, "100.5")])
    monkeypatch.setattr(api_mod, "urlopen", fake)

    kl = fetch_candlesticks("BTCUSDT", "1m", 1704067200000, 1704067320000)

    assert [k.open_time_ms for k in kl] == [1704067200000, 1704067260000]
    assert kl[1].open == Decimal("100.5")
    assert kl[0].volume == Decimal("12.34")
    assert kl[0].close_time_ms == 1704067259999

    url = urlparse(fake.urls[0])
    assert url.path == "/api/v3/klines"
    qs = parse_qs(url.query)
    assert qs["symbol"] == ["BTCUSDT"]
    assert qs["interval"] == ["1m"]
    assert qs["startTime"] == ["1704067200000"]
    assert qs["endTime"] == ["1704067320000"]


def test_open_bounds_are_omitted(monkeypatch):
    fake = _FakeUrlopen([])
    monkeypatch.setattr(api_mod, "urlopen", fake)

    assert fetch_candlesticks("ETHUSDT", Interval.M5) == []
    qs = parse_qs(urlparse(fake.urls[0]).query)
    assert "startTime" not in qs and "endTime" not in qs
    assert qs["interval"] == ["5m"]


def test_network_error_becomes_remote_fetch_failure(monkeypatch):
    def boom(req, timeout=None):
        raise URLError("connection refused")

    monkeypatch.setattr(api_mod, "urlopen", boom)
    with pytest.raises(RemoteFetchFailure) as exc:
        fetch_candlesticks("BTCUSDT", "1m")
    assert isinstance(exc.value.cause, URLError)


@pytest.mark.parametrize("payload", [{"code": -1121, "msg": "Invalid symbol."}, [["bad"]], [[1, "x", "1", "1", "1", "1", 2]]])
def test_malformed_payload(monkeypatch, payload):
    monkeypatch.setattr(api_mod, "urlopen", _FakeUrlopen(payload))
    with pytest.raises(RemoteFetchFailure):
        fetch_candlesticks("BTCUSDT", "1m")


def test_unknown_interval():
    with pytest.raises(ValueError):
        fetch_candlesticks("BTCUSDT", "7m")


def test_fetch_exchange_info(monkeypatch):
    monkeypatch.setattr(api_mod, "urlopen", _FakeUrlopen({"symbols": [{"symbol": "BTCUSDT"}]}))
    assert fetch_exchange_info()["symbols"][0]["symbol"] == "BTCUSDT"

    monkeypatch.setattr(api_mod, "urlopen", _FakeUrlopen({"serverTime": 1}))
    with pytest.raises(RemoteFetchFailure):
        fetch_exchange_info()


@pytest.mark.parametrize("entry", [{"baseAsset": "BTC"}, "BTCUSDT", {"symbol": None}])
def test_malformed_exchange_info_entry(monkeypatch, entry):
    monkeypatch.setattr(api_mod, "urlopen", _FakeUrlopen({"symbols": [{"symbol": "ETHUSDT"}, entry]}))
    with pytest.raises(RemoteFetchFailure):
        fetch_exchange_info()


def test_kline_keeps_raw_row(monkeypatch):
    row = _row(1704067200000, "100.12345678")
    monkeypatch.setattr(api_mod, "urlopen", _FakeUrlopen([row]))

    (k,) = fetch_candlesticks("BTCUSDT", "1m")
    assert k.to_row() == row

    local = Kline(1704067200000, Decimal("1.10"), Decimal("2"), Decimal("1"), Decimal("1.5"), Decimal("0.00000001"), 1704067259999)
    assert local.to_row() == [1704067200000, "1.10", "2", "1", "1.5", "1E-8", 1704067259999]
    # raw is not part of equality
    assert k == Kline(k.open_time_ms, k.open, k.high, k.low, k.close, k.volume, k.close_time_ms)
