#!/usr/bin/env python3
"""
Blunder Trainer - Main Entry Point

Real blunders from real games, rebuilt as puzzles. Watch the blunder and
guess the rating of the player who made it, look for a better move, or find
the blunder yourself.

Quick Examples:
    # Guess the blunderer's rating on a random Lichess puzzle
    python main.py

    # Find the blunder in today's puzzle
    python main.py --mode blunder --daily

    # Play offline from a Lichess puzzle database export
    python main.py --puzzle-file lichess_db_puzzle.csv --min-rating 1200 --max-rating 1800

Requirements:
    - Python 3.8+
    - Stockfish for move evaluation (optional, feedback degrades without it)
    # macOS:    brew install stockfish
    # Ubuntu:   sudo apt-get install stockfish
    # Windows:  choco install stockfish
"""

import sys
from pathlib import Path

# Add the project root to the Python path so we can import our package
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from blunder_trainer.cli import main

if __name__ == "__main__":
    sys.exit(main())
