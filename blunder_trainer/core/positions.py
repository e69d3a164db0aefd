"""
Position comparison helpers.

Two replays of the same position can carry different halfmove clocks and
fullmove numbers depending on where the replay started, so FEN strings are
compared on their first four fields only.
"""

from __future__ import annotations

# Piece placement, side to move, castling rights, en passant target
_POSITION_FIELDS = 4


def normalize_fen(fen: str) -> str:
    """Strip the move-count bookkeeping fields from a FEN string."""
    return " ".join(fen.split()[:_POSITION_FIELDS])


def positions_match(a: str, b: str) -> bool:
    """True if both FEN strings describe the same position, ignoring move counters."""
    return normalize_fen(a) == normalize_fen(b)
