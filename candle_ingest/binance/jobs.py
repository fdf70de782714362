from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol, Tuple

from .db import JOBS_TABLE, _connect, ensure_tables

if TYPE_CHECKING:
    from .ingest import CandleIngestor


logger = logging.getLogger(__name__)


@dataclass
class IngestJob:
    symbols: List[str]
    interval: str
    start_ms: Optional[int]
    end_ms: Optional[int]
    id: Optional[int] = None
    status: str = "pending"
    stored: Optional[int] = None
    error: Optional[str] = None


class JobQueue(Protocol):
    def dispatch(self, job: IngestJob) -> int: ...


class DuckDBJobQueue:
    """Jobs kept as rows of the ingest_jobs table; status is the failure channel."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        ensure_tables(db_path)

    def dispatch(self, job: IngestJob) -> int:
        con = _connect(self.db_path)
        try:
            row = con.execute(
                f"""
                INSERT INTO {JOBS_TABLE} (symbols, kline_interval, start_ms, end_ms)
                VALUES (?, ?, ?, ?)
                RETURNING id;
                """,
                [",".join(job.symbols), job.interval, job.start_ms, job.end_ms],
            ).fetchone()
        finally:
            con.close()
        job.id = int(row[0])
        logger.info("Queued job %d for %s %s", job.id, ",".join(job.symbols), job.interval)
        return job.id

    def pending(self) -> List[IngestJob]:
        con = _connect(self.db_path)
        try:
            rows = con.execute(
                f"""
                SELECT id, symbols, kline_interval, start_ms, end_ms
                FROM {JOBS_TABLE}
                WHERE status = 'pending'
                ORDER BY id
                """
            ).fetchall()
        finally:
            con.close()
        return [
            IngestJob(symbols=symbols.split(","), interval=interval, start_ms=start_ms, end_ms=end_ms, id=job_id)
            for job_id, symbols, interval, start_ms, end_ms in rows
        ]

    def _finish(self, job_id: int, status: str, stored: Optional[int], error: Optional[str]) -> None:
        con = _connect(self.db_path)
        try:
            con.execute(
                f"""
                UPDATE {JOBS_TABLE}
                SET status = ?, stored = ?, error = ?, finished_at = now()
                WHERE id = ?
                """,
                [status, stored, error, job_id],
            )
        finally:
            con.close()

    def mark_done(self, job_id: int, stored: int) -> None:
        self._finish(job_id, "done", stored, None)

    def mark_failed(self, job_id: int, error: str) -> None:
        self._finish(job_id, "failed", None, error)


def drain(queue: DuckDBJobQueue, ingestor: "CandleIngestor") -> Tuple[int, int]:
    """Run every pending job once. A failing job is recorded and skipped."""
    done = failed = 0
    for job in queue.pending():
        try:
            stored = ingestor.run_window(job.symbols, job.interval, job.start_ms, job.end_ms)
        except Exception as e:
            logger.warning("Job %d failed: %s", job.id, e)
            queue.mark_failed(job.id, str(e))
            failed += 1
            continue
        queue.mark_done(job.id, stored)
        done += 1
    return done, failed
