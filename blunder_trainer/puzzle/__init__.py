"""
Puzzle sources for the Blunder Trainer.

Providers deliver raw records (a game ending with the blunder plus the
solution); ``load_puzzle`` fetches one and reconstructs it into a verified
puzzle:

- LichessClient: the public Lichess puzzle API (random, daily, by id)
- PuzzleDatabase: an offline Lichess puzzle CSV export
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..core.models import RawPuzzleRecord, ReconstructedPuzzle
from ..core.rules import RulesEngine
from ..core.timeline import reconstruct_puzzle

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when a puzzle source is unreachable or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PuzzleProvider(Protocol):
    """Anything that can hand out raw puzzle records."""

    def fetch_random(self) -> RawPuzzleRecord: ...

    def fetch_by_id(self, puzzle_id: str) -> RawPuzzleRecord: ...

    def fetch_daily(self) -> RawPuzzleRecord: ...


def load_puzzle(
    provider: PuzzleProvider,
    puzzle_id: Optional[str] = None,
    daily: bool = False,
    rules: Optional[RulesEngine] = None,
) -> ReconstructedPuzzle:
    """
    Fetch a record and rebuild it into a puzzle.

    Raises:
        FetchError: If the provider fails
        ReconstructionError: If the record contains a move that cannot be replayed
    """
    if puzzle_id:
        record = provider.fetch_by_id(puzzle_id)
    elif daily:
        record = provider.fetch_daily()
    else:
        record = provider.fetch_random()

    logger.debug(f"Fetched puzzle {record.puzzle_id} with {len(record.moves)} game moves")
    return reconstruct_puzzle(record, rules)


__all__ = [
    "FetchError",
    "PuzzleProvider",
    "load_puzzle",
]
