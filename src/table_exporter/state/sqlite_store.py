from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from table_exporter.state.base import RunCheckpoint
from table_exporter.utils.time import utc_now_iso


class SQLiteCheckpointStore:
    """SQLite-backed run bookkeeping and per-job scan checkpoints."""

    def __init__(self, path: str):
        self.path = path
        self._ensure_parent_dir(path)
        self._ensure_schema()

    def mark_run_started(self, job_id: str) -> int:
        now = utc_now_iso()
        with self._session() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO job_runs (job_id, run_count, last_started_utc, last_completed_utc)
                VALUES (?, 0, NULL, NULL)
                """,
                (job_id,),
            )
            conn.execute(
                """
                UPDATE job_runs
                SET run_count = run_count + 1,
                    last_started_utc = ?
                WHERE job_id = ?
                """,
                (now, job_id),
            )
            row = conn.execute(
                "SELECT run_count FROM job_runs WHERE job_id = ?",
                (job_id,),
            ).fetchone()
            return int(row["run_count"]) if row else 1

    def mark_run_completed(self, job_id: str) -> None:
        now = utc_now_iso()
        with self._session() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO job_runs (job_id, run_count, last_started_utc, last_completed_utc)
                VALUES (?, 0, NULL, NULL)
                """,
                (job_id,),
            )
            conn.execute(
                "UPDATE job_runs SET last_completed_utc = ? WHERE job_id = ?",
                (now, job_id),
            )

    def load_checkpoint(self, job_id: str) -> Optional[RunCheckpoint]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT token_json, page_index, run_timestamp, counters_json, threshold_json, status, updated_at_utc
                FROM scan_checkpoint
                WHERE job_id = ?
                """,
                (job_id,),
            ).fetchone()

        if not row:
            return None

        counters: Dict[str, Any] = {}
        if row["counters_json"]:
            counters = json.loads(row["counters_json"])

        return RunCheckpoint(
            token_payload=row["token_json"] or None,
            page_index=int(row["page_index"] or 0),
            run_timestamp=str(row["run_timestamp"] or ""),
            status=str(row["status"] or ""),
            updated_at_utc=str(row["updated_at_utc"] or ""),
            counters=counters,
            threshold=json.loads(row["threshold_json"]) if row["threshold_json"] else None,
        )

    def save_checkpoint(
        self,
        job_id: str,
        token_payload: Optional[str],
        page_index: int,
        run_timestamp: str,
        counters: Dict[str, Any],
        threshold: Any = None,
        status: str = "in_progress",
    ) -> None:
        now = utc_now_iso()
        counters_json = json.dumps(counters, sort_keys=True)
        threshold_json = json.dumps(threshold) if threshold is not None else None
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO scan_checkpoint
                (job_id, token_json, page_index, run_timestamp, counters_json, threshold_json, status, updated_at_utc)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(job_id) DO UPDATE SET
                    token_json = excluded.token_json,
                    page_index = excluded.page_index,
                    run_timestamp = excluded.run_timestamp,
                    counters_json = excluded.counters_json,
                    threshold_json = excluded.threshold_json,
                    status = excluded.status,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (job_id, token_payload, int(page_index), run_timestamp, counters_json, threshold_json, status, now),
            )

    def clear_checkpoint(self, job_id: str) -> None:
        with self._session() as conn:
            conn.execute("DELETE FROM scan_checkpoint WHERE job_id = ?", (job_id,))

    def _ensure_schema(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS job_runs (
                    job_id TEXT PRIMARY KEY,
                    run_count INTEGER NOT NULL DEFAULT 0,
                    last_started_utc TEXT,
                    last_completed_utc TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scan_checkpoint (
                    job_id TEXT PRIMARY KEY,
                    token_json TEXT,
                    page_index INTEGER NOT NULL DEFAULT 0,
                    run_timestamp TEXT NOT NULL,
                    counters_json TEXT,
                    threshold_json TEXT,
                    status TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL
                )
                """
            )

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _ensure_parent_dir(self, path: str) -> None:
        parent = Path(path).parent
        if str(parent) not in {"", "."}:
            parent.mkdir(parents=True, exist_ok=True)
