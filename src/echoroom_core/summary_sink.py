"""Persistence targets for finalized meeting summaries."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Tuple
from uuid import uuid4

from .types import MeetingSummary


class SummarySink(Protocol):
    """Accepts a finalized summary when a meeting ends. Failures raise."""

    def save(self, summary: MeetingSummary) -> str: ...


class InMemorySummarySink:
    """Keeps summaries in a list; handy for tests and embedding."""

    def __init__(self) -> None:
        self.summaries: List[Tuple[str, MeetingSummary]] = []

    def save(self, summary: MeetingSummary) -> str:
        summary_id = str(uuid4())
        self.summaries.append((summary_id, summary))
        return summary_id

    def latest(self) -> Optional[MeetingSummary]:
        if not self.summaries:
            return None
        return self.summaries[-1][1]


class SQLiteSummarySink:
    """Persist meeting summaries in SQLite with WAL and safe transactions."""

    def __init__(self, root: Path | None = None, *, db_path: Path | None = None) -> None:
        self.root = root or Path("data/meeting_summaries")
        self.db_path = db_path or (self.root / "summaries.sqlite3")
        self._lock = threading.RLock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=5.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        return conn

    def _init_db(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS summaries (
                    summary_id TEXT PRIMARY KEY,
                    scenario_title TEXT NOT NULL,
                    summary_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

    def save(self, summary: MeetingSummary, *, summary_id: str | None = None) -> str:
        resolved_id = summary_id or str(uuid4())
        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO summaries(summary_id, scenario_title, summary_json, created_at)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(summary_id) DO UPDATE SET
                    scenario_title = excluded.scenario_title,
                    summary_json = excluded.summary_json,
                    created_at = excluded.created_at
                """,
                (
                    resolved_id,
                    summary.scenario_title,
                    json.dumps(summary.to_dict(), ensure_ascii=True),
                    now,
                ),
            )
        return resolved_id

    def load(self, summary_id: str) -> Optional[MeetingSummary]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT summary_json FROM summaries WHERE summary_id = ?",
                (summary_id,),
            ).fetchone()
        return self._deserialize(row)

    def latest(self) -> Optional[MeetingSummary]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT summary_json FROM summaries ORDER BY created_at DESC, rowid DESC LIMIT 1"
            ).fetchone()
        return self._deserialize(row)

    def _deserialize(self, row: Optional[sqlite3.Row]) -> Optional[MeetingSummary]:
        if row is None:
            return None
        try:
            payload = json.loads(str(row["summary_json"]))
        except Exception:
            return None
        if not isinstance(payload, dict):
            return None
        return MeetingSummary.from_dict(payload)
