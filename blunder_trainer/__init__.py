"""
Blunder Trainer - Learn from real blunders played in real games.

This package rebuilds historical chess blunders as puzzles. The player either
finds the move that was actually played, guesses the rating of the player who
made it, or looks for a better move, and every guess is graded against an
engine evaluation.
"""

__version__ = "0.1.0"
__author__ = "Blunder Trainer Team"
__license__ = "MIT"

# Core imports
from .core.models import Config, ReconstructedPuzzle, Timeline, EvaluationSample, ScoreAccumulator
from .core.engine import EvaluationGateway
from .core.session import RatingGuessSession, BlunderGuessSession
from .core.timeline import reconstruct_puzzle
from .cli import main

__all__ = [
    "Config",
    "ReconstructedPuzzle",
    "Timeline",
    "EvaluationSample",
    "ScoreAccumulator",
    "EvaluationGateway",
    "RatingGuessSession",
    "BlunderGuessSession",
    "reconstruct_puzzle",
    "main",
]
