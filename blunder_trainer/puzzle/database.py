"""
Offline puzzle database.

Reads a Lichess puzzle database export (CSV). In that format the FEN is the
position before the blunder, the first entry of ``Moves`` is the blunder and
the remaining entries are the solution. The source game itself is not part of
the export, so reconstructed puzzles have no history before the blunder.
"""

from __future__ import annotations

import csv
import logging
import random
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from ..core.models import Config, RawPuzzleRecord
from . import FetchError

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "PuzzleId", "FEN", "Moves", "Rating", "RatingDeviation",
    "Popularity", "NbPlays", "Themes", "GameUrl", "OpeningTags",
]


def _game_id(game_url: str) -> Optional[str]:
    """Extract "abcd1234" from "https://lichess.org/abcd1234/black#32"."""
    if not game_url:
        return None
    tail = game_url.rstrip("/").split("lichess.org/")[-1]
    return tail.split("/")[0].split("#")[0] or None


def parse_database_row(row: Dict[str, str]) -> RawPuzzleRecord:
    """Convert one CSV row into a raw record."""
    moves = row["Moves"].split()
    if not moves:
        raise ValueError(f"Puzzle {row['PuzzleId']} has no moves")

    return RawPuzzleRecord(
        puzzle_id=row["PuzzleId"],
        moves=moves[:1],
        solution=moves[1:],
        starting_position=row["FEN"],
        puzzle_rating=int(row["Rating"]),
        plays=int(row.get("NbPlays") or 0),
        popularity=int(row.get("Popularity") or 0),
        themes=(row.get("Themes") or "").split(),
        game_id=_game_id(row.get("GameUrl", "")),
    )


class PuzzleDatabase:
    """Puzzles loaded from a local Lichess CSV export."""

    def __init__(self, path: Path, config: Config, rng: Optional[random.Random] = None):
        """
        Load and filter the puzzle file.

        Args:
            path: CSV file (with or without header row)
            config: Rating range and minimum popularity filters
            rng: Random generator used by ``fetch_random``
        """
        self.path = Path(path)
        self.config = config
        self._rng = rng or random.Random()
        self._puzzles: List[RawPuzzleRecord] = []
        self._by_id: Dict[str, RawPuzzleRecord] = {}
        self._load()

    def _load(self) -> None:
        try:
            handle = open(self.path, newline="", encoding="utf-8")
        except OSError as e:
            raise FetchError(f"Cannot open puzzle file {self.path}: {e}") from e

        skipped = 0
        with handle:
            first_line = handle.readline()
            handle.seek(0)
            has_header = first_line.startswith("PuzzleId")
            reader = csv.DictReader(handle, fieldnames=None if has_header else CSV_FIELDS)

            for row in reader:
                try:
                    record = parse_database_row(row)
                except (KeyError, ValueError, TypeError) as e:
                    logger.debug(f"Skipping malformed row: {e}")
                    skipped += 1
                    continue

                if not self._accept(record):
                    skipped += 1
                    continue

                self._puzzles.append(record)
                self._by_id[record.puzzle_id] = record

        logger.info(f"Loaded {len(self._puzzles)} puzzles from {self.path} (skipped {skipped})")

    def _accept(self, record: RawPuzzleRecord) -> bool:
        rating = record.puzzle_rating or 0
        if not self.config.min_rating <= rating <= self.config.max_rating:
            return False
        if record.popularity is not None and record.popularity < self.config.min_popularity:
            return False
        return True

    def __len__(self) -> int:
        return len(self._puzzles)

    def _require_puzzles(self) -> None:
        if not self._puzzles:
            raise FetchError(f"No puzzles available in {self.path}")

    def fetch_random(self) -> RawPuzzleRecord:
        """Pick a random puzzle."""
        self._require_puzzles()
        return self._rng.choice(self._puzzles)

    def fetch_by_id(self, puzzle_id: str) -> RawPuzzleRecord:
        """Look up a puzzle by its Lichess id."""
        try:
            return self._by_id[puzzle_id]
        except KeyError:
            raise FetchError(f"Puzzle {puzzle_id} not found in {self.path}", status_code=404)

    def fetch_daily(self, today: Optional[date] = None) -> RawPuzzleRecord:
        """Pick the same puzzle for everyone on a given day."""
        self._require_puzzles()
        today = today or date.today()
        return self._puzzles[today.toordinal() % len(self._puzzles)]
