"""
Lichess puzzle API client.

Lichess puzzles are served as the PGN of the source game up to and including
the blunder, plus the solution in UCI. The last PGN move is the blunder; the
position after it is the usual Lichess puzzle position.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from ..core.models import Config, PlayerInfo, RawPuzzleRecord
from . import FetchError

logger = logging.getLogger(__name__)

# Move numbers such as "12." or "12..." and game results carry no move
_MOVE_NUMBER_REGEX = re.compile(r"^\d+\.+$")
_RESULTS = {"1-0", "0-1", "1/2-1/2", "*"}


def parse_pgn_moves(pgn: str) -> List[str]:
    """Split a plain PGN move list into SAN tokens."""
    tokens = []
    for token in pgn.split():
        if _MOVE_NUMBER_REGEX.match(token) or token in _RESULTS:
            continue
        # "12.e4" style tokens
        token = re.sub(r"^\d+\.+", "", token)
        if token:
            tokens.append(token)
    return tokens


def parse_lichess_puzzle(payload: Dict[str, Any]) -> RawPuzzleRecord:
    """
    Convert a Lichess puzzle API response into a raw record.

    Args:
        payload: Decoded JSON with ``game`` and ``puzzle`` objects

    Raises:
        FetchError: If required fields are missing
    """
    try:
        game = payload["game"]
        puzzle = payload["puzzle"]
        moves = parse_pgn_moves(game["pgn"])
        solution = list(puzzle["solution"])
        puzzle_id = str(puzzle["id"])
    except (KeyError, TypeError) as e:
        raise FetchError(f"Malformed puzzle response: missing {e}") from e

    players = [
        PlayerInfo(
            color=player.get("color", "?"),
            name=player.get("name", "?"),
            rating=player.get("rating"),
            user_id=player.get("id"),
        )
        for player in game.get("players", [])
    ]

    return RawPuzzleRecord(
        puzzle_id=puzzle_id,
        moves=moves,
        solution=solution,
        players=players,
        puzzle_rating=puzzle.get("rating"),
        plays=puzzle.get("plays", 0),
        themes=list(puzzle.get("themes", [])),
        game_id=game.get("id"),
        game_type=(game.get("perf") or {}).get("name", ""),
        initial_ply=puzzle.get("initialPly"),
    )


class LichessClient:
    """Fetch puzzles from the Lichess puzzle API."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            config: Global configuration (base URL and request timeout)
            session: HTTP session to use (a new one by default)
        """
        self.base_url = config.lichess_base_url.rstrip("/")
        self.timeout = config.request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def _get(self, path: str) -> RawPuzzleRecord:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch puzzle from {url}: {e}") from e

        if not response.ok:
            raise FetchError(
                f"Failed to fetch puzzle from {url}: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e

        record = parse_lichess_puzzle(payload)
        logger.info(f"Fetched Lichess puzzle {record.puzzle_id}")
        return record

    def fetch_random(self) -> RawPuzzleRecord:
        """Fetch the next random puzzle."""
        return self._get("/puzzle/next")

    def fetch_by_id(self, puzzle_id: str) -> RawPuzzleRecord:
        """Fetch a specific puzzle."""
        return self._get(f"/puzzle/{puzzle_id}")

    def fetch_daily(self) -> RawPuzzleRecord:
        """Fetch the puzzle of the day."""
        return self._get("/puzzle/daily")
