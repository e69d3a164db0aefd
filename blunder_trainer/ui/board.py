"""
Terminal chess board rendering for the Blunder Trainer.

Renders puzzle positions with Unicode pieces, highlighted last move and hint
squares, and the puzzle's move list with the blunder marked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Set

import chess
from rich.align import Align
from rich.box import ROUNDED
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.models import Timeline


@dataclass
class BoardColors:
    """Color scheme for chess board rendering."""
    white_square: str = "grey70"
    black_square: str = "grey35"
    white_piece: str = "bright_white"
    black_piece: str = "grey0"
    highlight_last_move: str = "green"
    highlight_hint: str = "yellow"
    border: str = "cyan"
    coordinates: str = "dim white"


class ChessBoardRenderer:
    """Render positions as Rich panels."""

    UNICODE_PIECES = {
        chess.PAWN: {"white": "♙", "black": "♟"},
        chess.ROOK: {"white": "♖", "black": "♜"},
        chess.KNIGHT: {"white": "♘", "black": "♞"},
        chess.BISHOP: {"white": "♗", "black": "♝"},
        chess.QUEEN: {"white": "♕", "black": "♛"},
        chess.KING: {"white": "♔", "black": "♚"},
    }

    def __init__(self, colors: Optional[BoardColors] = None, flip_board: bool = False):
        """
        Initialize the renderer.

        Args:
            colors: Color scheme for the board
            flip_board: If True, display from black's perspective
        """
        self.colors = colors or BoardColors()
        self.flip_board = flip_board

    def render_position(
        self,
        fen: str,
        last_move: Optional[str] = None,
        hint_squares: Iterable[str] = (),
        title: Optional[str] = None,
    ) -> Panel:
        """
        Render a position.

        Args:
            fen: Position to render
            last_move: UCI move whose squares are highlighted
            hint_squares: Square names highlighted as hints
            title: Panel title (defaults to the side to move)
        """
        board = chess.Board(fen)
        moved: Set[chess.Square] = set()
        if last_move:
            move = chess.Move.from_uci(last_move)
            moved = {move.from_square, move.to_square}
        hints = {chess.parse_square(name) for name in hint_squares}

        table = Table.grid(padding=0)
        table.add_column(justify="center", width=2)
        for _ in range(8):
            table.add_column(justify="center", width=3)

        ranks = range(8, 0, -1) if not self.flip_board else range(1, 9)
        files = range(8) if not self.flip_board else range(7, -1, -1)

        for rank in ranks:
            row = [Text(str(rank), style=self.colors.coordinates)]
            for file in files:
                square = chess.square(file, rank - 1)
                row.append(self._render_square(board, square, moved, hints))
            table.add_row(*row)

        file_labels = "abcdefgh" if not self.flip_board else "hgfedcba"
        table.add_row("", *(Text(label, style=self.colors.coordinates) for label in file_labels))

        if title is None:
            title = f"{'White' if board.turn == chess.WHITE else 'Black'} to move"

        return Panel(
            Align.center(table),
            title=title,
            border_style=self.colors.border,
            box=ROUNDED,
            padding=(0, 1),
        )

    def _render_square(
        self,
        board: chess.Board,
        square: chess.Square,
        moved: Set[chess.Square],
        hints: Set[chess.Square],
    ) -> Text:
        piece = board.piece_at(square)
        is_light_square = (chess.square_file(square) + chess.square_rank(square)) % 2 == 1

        if square in hints:
            bg_color = self.colors.highlight_hint
        elif square in moved:
            bg_color = self.colors.highlight_last_move
        elif is_light_square:
            bg_color = self.colors.white_square
        else:
            bg_color = self.colors.black_square

        if piece:
            color_key = "white" if piece.color == chess.WHITE else "black"
            piece_char = self.UNICODE_PIECES[piece.piece_type][color_key]
            piece_color = self.colors.white_piece if piece.color == chess.WHITE else self.colors.black_piece
        else:
            piece_char = " "
            piece_color = "white"

        return Text(f" {piece_char} ", style=f"{piece_color} on {bg_color}")


def render_move_list(timeline: Timeline, cursor: int, upto: Optional[int] = None) -> Text:
    """
    Render numbered moves with the blunder marked "??" and the cursor in bold.

    Args:
        timeline: Puzzle timeline
        cursor: Index of the move to emphasize
        upto: Last index to show (defaults to the whole timeline)
    """
    upto = timeline.last_index if upto is None else upto
    text = Text()
    for index, record in enumerate(timeline.moves[:upto + 1]):
        board = chess.Board(record.resulting_position)
        # Fullmove number after the move; black's moves increment it
        number = board.fullmove_number - (1 if record.mover == "black" else 0)
        if record.mover == "white":
            text.append(f"{number}. ", style="dim")
        elif index == 0:
            text.append(f"{number}... ", style="dim")

        label = record.notation + ("??" if index == timeline.blunder_index else "")
        if index == cursor:
            style = "bold reverse"
        elif index == timeline.blunder_index:
            style = "bold red"
        elif index > timeline.blunder_index:
            style = "green"
        else:
            style = ""
        text.append(label, style=style)
        text.append(" ")
    return text
