"""
UI package for the Blunder Trainer.

This package contains the terminal rendering used by the command-line
interface: the chess board and the puzzle move list, built with Rich.
"""

from .board import (
    ChessBoardRenderer,
    BoardColors,
    render_move_list,
)

__all__ = [
    "ChessBoardRenderer",
    "BoardColors",
    "render_move_list",
]
