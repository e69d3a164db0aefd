"""
Core package for the Blunder Trainer.

This package contains the puzzle engine: data models, position comparison,
timeline reconstruction, the evaluation gateway, guess grading, the session
state machines and the statistics store.
"""

from .models import (
    MoveRecord,
    Timeline,
    PlayerInfo,
    RawPuzzleRecord,
    ReconstructedPuzzle,
    EvaluationSample,
    ScoreAccumulator,
    Config,
)

from .positions import normalize_fen, positions_match

from .rules import RulesEngine, IllegalMoveError

from .timeline import build_timeline, reconstruct_puzzle, ReconstructionError

from .engine import (
    EvaluationGateway,
    EvaluationError,
    EvaluationInitError,
    EvaluationTimeout,
    EvaluationBusyError,
    EvaluationCancelledError,
    autodetect_stockfish,
    get_friendly_stockfish_hint,
)

from .grading import (
    grade_rating_guess,
    grade_move_quality,
    describe_mistake,
    format_evaluation,
    FALLBACK_MESSAGE,
)

from .session import (
    RatingGuessSession,
    BlunderGuessSession,
    RatingPhase,
    BlunderPhase,
    InvalidTransitionError,
    SessionClosedError,
    BEFORE_HISTORY,
)

from .stats import StatsStore, StatsError

__all__ = [
    # Data models
    "MoveRecord",
    "Timeline",
    "PlayerInfo",
    "RawPuzzleRecord",
    "ReconstructedPuzzle",
    "EvaluationSample",
    "ScoreAccumulator",
    "Config",

    # Reconstruction
    "normalize_fen",
    "positions_match",
    "RulesEngine",
    "IllegalMoveError",
    "build_timeline",
    "reconstruct_puzzle",
    "ReconstructionError",

    # Evaluation
    "EvaluationGateway",
    "EvaluationError",
    "EvaluationInitError",
    "EvaluationTimeout",
    "EvaluationBusyError",
    "EvaluationCancelledError",
    "autodetect_stockfish",
    "get_friendly_stockfish_hint",

    # Grading
    "grade_rating_guess",
    "grade_move_quality",
    "describe_mistake",
    "format_evaluation",
    "FALLBACK_MESSAGE",

    # Sessions
    "RatingGuessSession",
    "BlunderGuessSession",
    "RatingPhase",
    "BlunderPhase",
    "InvalidTransitionError",
    "SessionClosedError",
    "BEFORE_HISTORY",

    # Statistics
    "StatsStore",
    "StatsError",
]
