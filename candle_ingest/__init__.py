"""Candle Ingest - candlestick ingestion utilities for cryptocurrency exchanges.

Provides:
- Binance spot candlestick fetch-and-store loop
- Exchange symbol metadata refresh
- DuckDB persistence layer and job queue
"""

__version__ = "0.1.0"

from . import binance

__all__ = ["binance", "__version__"]
