from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class PersistConfig:
    root_dir: Path
    dataset_slug: str

    def dataset_dir(self) -> Path:
        d = self.root_dir / self.dataset_slug
        d.mkdir(parents=True, exist_ok=True)
        return d


def now_utc_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")


def snapshot_name(symbol: str, interval: str, start_ms: int | None, last_ms: int | None) -> str:
    return "-".join(["candlesticks", symbol, interval, f"s-{start_ms}", f"e-{last_ms}"])


def write_raw_json(cfg: PersistConfig, name: str, payload: Any) -> Path:
    out = cfg.dataset_dir() / f"{name}.json"
    out.write_text(json.dumps(payload))
    return out
