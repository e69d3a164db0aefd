"""
Chess rules collaborator backed by python-chess.

The puzzle core never implements chess rules itself. It replays moves through
this thin wrapper to obtain resulting positions, SAN notation and legality.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List

import chess

from .models import WHITE, BLACK

logger = logging.getLogger(__name__)

UCI_REGEX = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")

# Annotation glyphs that appear in PGN exports but are not part of SAN
_ANNOTATION_REGEX = re.compile(r"[!?]+$")


class IllegalMoveError(ValueError):
    """Raised when a move cannot be played in the given position."""

    def __init__(self, position: str, move: str, reason: str = "illegal move"):
        self.position = position
        self.move = move
        super().__init__(f"{reason}: {move!r} in {position}")


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of playing one move."""

    resulting_position: str
    notation: str
    origin: str
    destination: str
    mover: str
    uci: str


def color_name(color: chess.Color) -> str:
    """Map a python-chess color to "white" / "black"."""
    return WHITE if color == chess.WHITE else BLACK


class RulesEngine:
    """Deterministic move replay and notation on top of python-chess."""

    def parse_move(self, board: chess.Board, move: str) -> chess.Move:
        """
        Parse a SAN or UCI move string against a position.

        Args:
            board: Position the move is played from
            move: SAN (annotation glyphs allowed) or UCI move text

        Returns:
            The legal python-chess move

        Raises:
            IllegalMoveError: If the move cannot be parsed or is not legal
        """
        text = move.strip()
        position = board.fen()

        if UCI_REGEX.match(text):
            try:
                parsed = chess.Move.from_uci(text)
            except ValueError as e:
                raise IllegalMoveError(position, move, "invalid move") from e
            if parsed not in board.legal_moves:
                raise IllegalMoveError(position, move)
            return parsed

        san = _ANNOTATION_REGEX.sub("", text)
        try:
            return board.parse_san(san)
        except ValueError as e:
            raise IllegalMoveError(position, move) from e

    def replay(self, position: str, move: str) -> ReplayResult:
        """Play a move from a FEN position and describe the result."""
        try:
            board = chess.Board(position)
        except ValueError as e:
            raise IllegalMoveError(position, move, "invalid position") from e

        parsed = self.parse_move(board, move)
        notation = board.san(parsed)
        mover = color_name(board.turn)
        board.push(parsed)

        logger.debug(f"Replayed {notation} ({parsed.uci()})")
        return ReplayResult(
            resulting_position=board.fen(),
            notation=notation,
            origin=chess.square_name(parsed.from_square),
            destination=chess.square_name(parsed.to_square),
            mover=mover,
            uci=parsed.uci(),
        )

    def is_legal(self, position: str, move: str) -> bool:
        """True if the move can be played from the position."""
        try:
            self.parse_move(chess.Board(position), move)
        except ValueError:
            return False
        return True

    def legal_destinations(self, position: str) -> Dict[str, List[str]]:
        """Map each origin square to the squares its piece may move to."""
        board = chess.Board(position)
        destinations: Dict[str, List[str]] = {}
        for move in board.legal_moves:
            origin = chess.square_name(move.from_square)
            target = chess.square_name(move.to_square)
            targets = destinations.setdefault(origin, [])
            if target not in targets:
                targets.append(target)
        return destinations

    def side_to_move(self, position: str) -> str:
        """Color whose turn it is in the position."""
        return color_name(chess.Board(position).turn)
