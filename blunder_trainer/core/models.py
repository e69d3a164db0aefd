"""
Core data models for the Blunder Trainer.

This module defines the fundamental data structures used throughout the application
for representing replayed moves, puzzle timelines, engine evaluations, running
player statistics, and configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Dict, Any, Tuple, Iterator

import chess

WHITE = "white"
BLACK = "black"

# Large centipawn value used to rank mate scores against ordinary evaluations
MATE_SCORE = 10000

LICHESS_URL = "https://lichess.org"


@dataclass(frozen=True)
class MoveRecord:
    """One replayed ply."""

    notation: str               # SAN, as produced by the rules engine
    resulting_position: str     # FEN after the move
    mover: str                  # "white" or "black"
    origin: str                 # e.g. "e2"
    destination: str            # e.g. "e4"
    uci: str                    # Coordinate form, e.g. "e7e8q"


@dataclass(frozen=True)
class Timeline:
    """
    Ordered, immutable move sequence of a puzzle.

    Indices ``0..blunder_index-1`` hold the game history before the blunder,
    ``blunder_index`` holds the blunder and everything after it is the solution.
    """

    moves: Tuple[MoveRecord, ...]
    blunder_index: int

    def __post_init__(self):
        """Validate the blunder marker."""
        if not 0 <= self.blunder_index < len(self.moves):
            raise ValueError(
                f"Blunder index {self.blunder_index} outside timeline of {len(self.moves)} moves"
            )

    def __len__(self) -> int:
        return len(self.moves)

    def __getitem__(self, index: int) -> MoveRecord:
        return self.moves[index]

    def __iter__(self) -> Iterator[MoveRecord]:
        return iter(self.moves)

    @property
    def last_index(self) -> int:
        """Index of the final move."""
        return len(self.moves) - 1

    @property
    def pre_blunder(self) -> Tuple[MoveRecord, ...]:
        """Game history leading up to the blunder."""
        return self.moves[:self.blunder_index]

    @property
    def blunder(self) -> MoveRecord:
        """The blunder itself."""
        return self.moves[self.blunder_index]

    @property
    def solution(self) -> Tuple[MoveRecord, ...]:
        """Moves that punish the blunder."""
        return self.moves[self.blunder_index + 1:]


@dataclass
class PlayerInfo:
    """A player of the source game."""

    color: str
    name: str = "?"
    rating: Optional[int] = None
    user_id: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.name} ({self.rating})" if self.rating else self.name


@dataclass
class RawPuzzleRecord:
    """A puzzle as delivered by a provider, before reconstruction."""

    puzzle_id: str
    moves: List[str]                          # Game moves ending with the blunder
    solution: List[str]                       # UCI moves punishing the blunder
    starting_position: str = chess.STARTING_FEN
    players: List[PlayerInfo] = field(default_factory=list)
    puzzle_rating: Optional[int] = None
    plays: int = 0
    popularity: Optional[int] = None
    themes: List[str] = field(default_factory=list)
    game_id: Optional[str] = None
    game_type: str = ""
    initial_ply: Optional[int] = None


@dataclass
class ReconstructedPuzzle:
    """A verified puzzle ready to be presented."""

    puzzle_id: str
    pre_blunder_position: str
    blunder_move: str                         # SAN
    blunder_uci: str
    post_blunder_position: str
    solution_moves: List[str]                 # UCI, as supplied by the source
    timeline: Timeline
    opponent_setup_move: Optional[MoveRecord] = None
    starting_position: str = chess.STARTING_FEN

    # Source metadata
    players: List[PlayerInfo] = field(default_factory=list)
    puzzle_rating: Optional[int] = None
    plays: int = 0
    popularity: Optional[int] = None
    themes: List[str] = field(default_factory=list)
    game_id: Optional[str] = None
    game_type: str = ""

    @property
    def blunder_index(self) -> int:
        return self.timeline.blunder_index

    @property
    def blunderer(self) -> Optional[PlayerInfo]:
        """The player who made the blunder, if known."""
        mover = self.timeline.blunder.mover
        for player in self.players:
            if player.color == mover:
                return player
        return None

    @property
    def blunderer_rating(self) -> Optional[int]:
        player = self.blunderer
        return player.rating if player else None

    @property
    def game_rating(self) -> Optional[int]:
        """Average rating of both players."""
        ratings = [p.rating for p in self.players if p.rating is not None]
        if not ratings:
            return None
        return round(sum(ratings) / len(ratings))

    @property
    def solution_notation(self) -> List[str]:
        return [move.notation for move in self.timeline.solution]

    @property
    def game_url(self) -> Optional[str]:
        return f"{LICHESS_URL}/{self.game_id}" if self.game_id else None

    @property
    def puzzle_url(self) -> str:
        return f"{LICHESS_URL}/training/{self.puzzle_id}"


@dataclass(frozen=True)
class EvaluationSample:
    """
    Result of one completed engine search.

    ``score`` and ``mate_distance`` are relative to the side to move in
    ``position``. Samples are never patched; a newer search produces a new sample.
    """

    score: int
    mate_distance: Optional[int] = None
    best_move: Optional[str] = None
    depth: int = 0
    position: Optional[str] = None

    def to_mover_perspective(self) -> EvaluationSample:
        """
        Re-express the sample from the point of view of the side that just moved.

        The engine scores the side to move. When the evaluated position was
        reached by a move, the quality of that move is the negation. This is the
        only place where the sign is flipped.
        """
        mate = None if self.mate_distance is None else -self.mate_distance
        return replace(self, score=-self.score, mate_distance=mate)

    @property
    def is_mate(self) -> bool:
        return self.mate_distance is not None

    @property
    def is_forced_loss(self) -> bool:
        """True if the side this sample is relative to gets mated."""
        # Mate 0 means the side to move is already mated, so the score carries the sign
        return self.mate_distance is not None and self.score < 0


@dataclass(frozen=True)
class ScoreAccumulator:
    """Running player statistics across puzzles."""

    total_guesses: int = 0
    total_rating_difference: int = 0
    current_streak: int = 0
    best_streak: int = 0
    total_move_points: int = 0
    moves_graded: int = 0
    puzzles_solved: int = 0
    blunder_attempts: int = 0

    @property
    def average_rating_difference(self) -> float:
        """Average absolute rating miss per guess."""
        if self.total_guesses == 0:
            return 0.0
        return self.total_rating_difference / self.total_guesses

    @property
    def average_move_points(self) -> float:
        """Average move-quality points per graded move."""
        if self.moves_graded == 0:
            return 0.0
        return self.total_move_points / self.moves_graded

    def with_rating_guess(self, difference: int, new_streak: int, new_best: int) -> ScoreAccumulator:
        """Return a copy updated with a graded rating guess."""
        return replace(
            self,
            total_guesses=self.total_guesses + 1,
            total_rating_difference=self.total_rating_difference + difference,
            current_streak=new_streak,
            best_streak=max(self.best_streak, new_best),
        )

    def with_move_points(self, points: int) -> ScoreAccumulator:
        """Return a copy updated with a graded free-play move."""
        return replace(
            self,
            total_move_points=self.total_move_points + points,
            moves_graded=self.moves_graded + 1,
        )

    def with_solved_puzzle(self, attempts: int) -> ScoreAccumulator:
        """Return a copy updated with a solved find-the-blunder puzzle."""
        return replace(
            self,
            puzzles_solved=self.puzzles_solved + 1,
            blunder_attempts=self.blunder_attempts + attempts,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScoreAccumulator:
        return cls(**{k: int(v) for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Config:
    """Configuration settings for the blunder trainer."""

    # Engine settings
    stockfish_path: Optional[str] = None
    eval_depth: int = 15
    engine_init_timeout: float = 10.0
    eval_timeout: float = 30.0

    # Presentation timing (seconds)
    blunder_pause: float = 1.5
    solution_pause: float = 0.8
    wrong_guess_reset_delay: float = 1.5

    # Puzzle source settings
    lichess_base_url: str = "https://lichess.org/api"
    request_timeout: float = 10.0
    puzzle_file: Optional[str] = None
    min_rating: int = 1000
    max_rating: int = 2500
    min_popularity: int = -50

    # Statistics settings
    stats_db_path: str = "data/stats.db"
    stats_key: str = "default"

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Config:
        """Create config from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
