"""Binance spot candlestick and exchange info ingestion into DuckDB.

Pages candlesticks forward per symbol, upserting each page into a
per-interval table, and keeps a symbol metadata table for the ALL roster.
"""

__all__ = [
    "api",
    "dates",
    "db",
    "errors",
    "exchange_info",
    "ingest",
    "jobs",
    "persistence",
]
