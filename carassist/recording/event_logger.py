"""SQLite alert history with WAL mode for concurrent reads."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS alerts (
    alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    label TEXT NOT NULL,
    area_ratio REAL,
    cue TEXT NOT NULL,
    session_time REAL NOT NULL,
    created_at REAL NOT NULL
);
"""

INSERT_SQL = """
INSERT INTO alerts (kind, label, area_ratio, cue, session_time, created_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

SELECT_RECENT_SQL = """
SELECT alert_id, kind, label, area_ratio, cue, session_time, created_at
FROM alerts ORDER BY alert_id DESC LIMIT ?
"""


@dataclass
class AlertRecord:
    """One logged alert."""
    alert_id: Optional[int]
    kind: str                 # "proximity" or "class"
    label: str
    area_ratio: Optional[float]
    cue: str
    session_time: float       # pipeline `now` when the alert fired
    created_at: float         # wall clock

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "kind": self.kind,
            "label": self.label,
            "area_ratio": self.area_ratio,
            "cue": self.cue,
            "session_time": self.session_time,
            "created_at": self.created_at,
        }


class AlertLogger:
    """Logs alerts fired by pipeline sessions to SQLite."""

    def __init__(self, db_path: str):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(CREATE_TABLE_SQL)
        self._conn.commit()
        logger.info("Alert logger initialized: %s", self._db_path)

    def __call__(self, event_data: dict) -> None:
        """Pipeline event callback."""
        if event_data.get("type") == "alert":
            self.log_alert(event_data)

    def log_alert(self, event_data: dict) -> int:
        """Insert an alert. Returns the alert_id."""
        with self._lock:
            cursor = self._conn.execute(INSERT_SQL, (
                event_data["kind"],
                event_data["label"],
                event_data.get("area_ratio"),
                event_data["cue"],
                float(event_data.get("timestamp", 0.0)),
                time.time(),
            ))
            self._conn.commit()
        alert_id = cursor.lastrowid
        logger.debug("Logged alert #%d (%s %r)", alert_id,
                     event_data["kind"], event_data["label"])
        return alert_id

    def get_recent(self, limit: int = 50) -> list[AlertRecord]:
        """Get the most recent alerts, newest first."""
        with self._lock:
            cursor = self._conn.execute(SELECT_RECENT_SQL, (limit,))
            rows = cursor.fetchall()
        return [AlertRecord(*row) for row in rows]

    def get_stats(self) -> dict:
        """Alert counts, total and per kind."""
        with self._lock:
            total = self._conn.execute("SELECT COUNT(*) FROM alerts").fetchone()[0]
            by_kind = dict(self._conn.execute(
                "SELECT kind, COUNT(*) FROM alerts GROUP BY kind"
            ).fetchall())
        return {"total": total, "by_kind": by_kind}

    def clear_all(self) -> int:
        """Delete all alerts. Returns the number removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM alerts")
            self._conn.commit()
        count = cursor.rowcount
        logger.info("Cleared %d alerts from history", count)
        return count

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
