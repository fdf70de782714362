from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for errors raised by the candlestick ingestion layer."""


def _invalid_message(label: Optional[str]) -> str:
    return "Invalid " + (f"'{label}' " if label else "") + "date/time specified"


class InvalidDateFormat(IngestError, ValueError):
    """Value is neither a 10/13 digit epoch nor a parseable date string."""

    def __init__(self, label: Optional[str], value: object = None):
        super().__init__(_invalid_message(label))
        self.label = label
        self.value = value


class OutOfRangeDate(IngestError, ValueError):
    """Parsed value falls outside (now - 1 year, now]."""

    def __init__(self, label: Optional[str], value: object = None):
        super().__init__(_invalid_message(label))
        self.label = label
        self.value = value


class RemoteFetchFailure(IngestError):
    def __init__(self, url: str, cause: BaseException):
        super().__init__(f"request to {url} failed: {cause}")
        self.url = url
        self.cause = cause


class ConfigError(IngestError):
    pass
