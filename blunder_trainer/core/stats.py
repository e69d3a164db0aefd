"""
Persistent player statistics for the Blunder Trainer.

Running counters are stored in a small SQLite database keyed by profile name.
Each write replaces the whole row inside one transaction, so a failed write
leaves the previous counters untouched.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List

from .models import ScoreAccumulator

logger = logging.getLogger(__name__)

_COUNTERS: List[str] = list(ScoreAccumulator.__dataclass_fields__)


class StatsError(Exception):
    """Raised when statistics cannot be read or written."""
    pass


class StatsStore:
    """SQLite store for ``ScoreAccumulator`` counters."""

    def __init__(self, db_path: Path):
        """Initialize the statistics database."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        columns = ",\n".join(f"{name} INTEGER NOT NULL DEFAULT 0" for name in _COUNTERS)
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript(f"""
                CREATE TABLE IF NOT EXISTS player_stats (
                    profile TEXT PRIMARY KEY,
                    {columns},
                    updated_at DATETIME
                );
            """)

    def load(self, key: str) -> ScoreAccumulator:
        """Read the counters of a profile (zeros for an unknown profile)."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                row = conn.execute(
                    "SELECT * FROM player_stats WHERE profile = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StatsError(f"Failed to load statistics for {key!r}: {e}") from e

        if row is None:
            return ScoreAccumulator()
        return ScoreAccumulator.from_dict({name: row[name] for name in _COUNTERS})

    def save(self, key: str, accumulator: ScoreAccumulator) -> None:
        """Replace the counters of a profile in a single transaction."""
        placeholders = ", ".join("?" for _ in _COUNTERS)
        values = [getattr(accumulator, name) for name in _COUNTERS]
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO player_stats (profile, {', '.join(_COUNTERS)}, updated_at) "
                    f"VALUES (?, {placeholders}, ?)",
                    (key, *values, datetime.now().isoformat()),
                )
        except sqlite3.Error as e:
            raise StatsError(f"Failed to save statistics for {key!r}: {e}") from e

        logger.debug(f"Saved statistics for {key}: {accumulator}")

    def reset(self, key: str) -> None:
        """Delete the counters of a profile."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM player_stats WHERE profile = ?", (key,))
