"""
Puzzle reconstruction for the Blunder Trainer.

A puzzle source delivers the moves of a real game ending with the blunder,
plus the solution that punishes it. This module replays everything through
the rules engine and produces a verified timeline:

    0 .. k-1   game history before the blunder
    k          the blunder
    k+1 .. n   the solution

Any move the rules engine rejects makes the whole puzzle unusable; a partial
timeline is never returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import chess

from .models import MoveRecord, RawPuzzleRecord, ReconstructedPuzzle, Timeline
from .rules import RulesEngine, ReplayResult

logger = logging.getLogger(__name__)


class ReconstructionError(Exception):
    """Raised when a historical record cannot be replayed."""

    def __init__(self, move: Optional[str], index: int, reason: str = "illegal move"):
        self.move = move
        self.index = index
        super().__init__(f"Cannot reconstruct puzzle: {reason} {move!r} at index {index}")


@dataclass(frozen=True)
class TimelineBuild:
    """Everything produced by replaying one puzzle."""

    timeline: Timeline
    pre_blunder_position: str
    post_blunder_position: str
    opponent_setup_move: Optional[MoveRecord]

    @property
    def blunder(self) -> MoveRecord:
        return self.timeline.blunder


def _to_record(result: ReplayResult) -> MoveRecord:
    return MoveRecord(
        notation=result.notation,
        resulting_position=result.resulting_position,
        mover=result.mover,
        origin=result.origin,
        destination=result.destination,
        uci=result.uci,
    )


def build_timeline(
    raw_moves: Sequence[str],
    solution_moves: Sequence[str],
    starting_position: str = chess.STARTING_FEN,
    rules: Optional[RulesEngine] = None,
) -> TimelineBuild:
    """
    Replay a game and its solution into an indexed timeline.

    Args:
        raw_moves: Game moves (SAN or UCI); the last one is the blunder
        solution_moves: Moves punishing the blunder, in coordinate form
        starting_position: FEN the game moves start from
        rules: Rules engine collaborator

    Returns:
        The timeline with pre- and post-blunder positions

    Raises:
        ReconstructionError: If any move cannot be replayed
    """
    rules = rules or RulesEngine()

    if not raw_moves:
        raise ReconstructionError(None, 0, "no blunder in")

    records: List[MoveRecord] = []
    position = starting_position

    def play(move: str) -> MoveRecord:
        index = len(records)
        try:
            result = rules.replay(position, move)
        except ValueError as e:
            logger.warning(f"Rejected move {move!r} at index {index}: {e}")
            raise ReconstructionError(move, index) from e
        record = _to_record(result)
        records.append(record)
        return record

    history, blunder_text = raw_moves[:-1], raw_moves[-1]

    opponent_setup_move: Optional[MoveRecord] = None
    for move in history:
        opponent_setup_move = play(move)
        position = opponent_setup_move.resulting_position

    pre_blunder_position = position
    blunder_index = len(records)

    blunder = play(blunder_text)
    position = post_blunder_position = blunder.resulting_position

    for move in solution_moves:
        position = play(move).resulting_position

    timeline = Timeline(moves=tuple(records), blunder_index=blunder_index)
    logger.debug(
        f"Built timeline of {len(timeline)} moves, blunder {blunder.notation} at index {blunder_index}"
    )

    return TimelineBuild(
        timeline=timeline,
        pre_blunder_position=pre_blunder_position,
        post_blunder_position=post_blunder_position,
        opponent_setup_move=opponent_setup_move,
    )


def reconstruct_puzzle(record: RawPuzzleRecord, rules: Optional[RulesEngine] = None) -> ReconstructedPuzzle:
    """Turn a provider record into a verified puzzle."""
    build = build_timeline(record.moves, record.solution, record.starting_position, rules)
    blunder = build.blunder

    logger.info(
        f"Reconstructed puzzle {record.puzzle_id}: blunder {blunder.notation} "
        f"after {build.timeline.blunder_index} moves"
    )

    return ReconstructedPuzzle(
        puzzle_id=record.puzzle_id,
        pre_blunder_position=build.pre_blunder_position,
        blunder_move=blunder.notation,
        blunder_uci=blunder.uci,
        post_blunder_position=build.post_blunder_position,
        solution_moves=list(record.solution),
        timeline=build.timeline,
        opponent_setup_move=build.opponent_setup_move,
        starting_position=record.starting_position,
        players=list(record.players),
        puzzle_rating=record.puzzle_rating,
        plays=record.plays,
        popularity=record.popularity,
        themes=list(record.themes),
        game_id=record.game_id,
        game_type=record.game_type,
    )
