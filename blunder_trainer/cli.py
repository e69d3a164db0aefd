"""
Command-line interface for the Blunder Trainer.

This module provides the main entry point and argument parsing, and runs the
interactive terminal loop: load a puzzle, drive a session through its phases
and show the graded results.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .core.engine import EvaluationGateway, autodetect_stockfish, get_friendly_stockfish_hint
from .core.grading import format_evaluation
from .core.models import Config, MoveRecord, ScoreAccumulator
from .core.rules import RulesEngine
from .core.session import BlunderGuessSession, BlunderPhase, RatingGuessSession, RatingPhase
from .core.stats import StatsStore
from .core.timeline import ReconstructionError
from .puzzle import FetchError, PuzzleProvider, load_puzzle
from .puzzle.database import PuzzleDatabase
from .puzzle.lichess import LichessClient
from .ui.board import ChessBoardRenderer, render_move_list

Session = Union[RatingGuessSession, BlunderGuessSession]


def setup_logging(level=logging.INFO, verbose: bool = False):
    """Setup logging that doesn't interfere with the interactive prompts."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if verbose:
        root_logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
        root_logger.setLevel(logging.DEBUG)
    else:
        root_logger.addHandler(logging.NullHandler())
        root_logger.setLevel(level)


setup_logging()
logger = logging.getLogger(__name__)

console = Console()


class TrainerApp:
    """
    Interactive puzzle loop.

    Owns the shared evaluation gateway and creates one session per puzzle,
    closing it before the next puzzle is loaded.
    """

    def __init__(self, config: Config, mode: str, provider: PuzzleProvider,
                 gateway: EvaluationGateway, stats_store: Optional[StatsStore]):
        self.config = config
        self.mode = mode
        self.provider = provider
        self.gateway = gateway
        self.stats_store = stats_store
        self.rules = RulesEngine()
        self.renderer = ChessBoardRenderer()

    async def run(self, puzzle_id: Optional[str] = None, daily: bool = False) -> int:
        """Play puzzles until the player stops."""
        while True:
            try:
                puzzle = await asyncio.to_thread(load_puzzle, self.provider, puzzle_id, daily, self.rules)
            except FetchError as e:
                console.print(f"[red]Could not load puzzle: {e}[/red]")
                if not await self._confirm("Try again?"):
                    return 1
                continue
            except ReconstructionError as e:
                logger.warning(f"Puzzle unavailable: {e}")
                console.print(f"[red]Puzzle unavailable: {e}[/red]")
                puzzle_id, daily = None, False
                if not await self._confirm("Load another puzzle?"):
                    return 1
                continue

            if self.mode == "rating":
                session: Session = RatingGuessSession(puzzle, self.gateway, self.config, self.stats_store, self.rules)
            else:
                session = BlunderGuessSession(puzzle, self.gateway, self.config, self.stats_store, self.rules)

            try:
                if self.mode == "rating":
                    await self._play_rating(session)
                else:
                    await self._play_blunder(session)
            finally:
                session.close()

            show_stats(session.accumulator)
            puzzle_id, daily = None, False
            if not await self._confirm("Next puzzle?"):
                return 0

    # -- rating guess ------------------------------------------------------

    async def _play_rating(self, session: RatingGuessSession) -> None:
        puzzle = session.puzzle
        console.print(f"\n[bold cyan]Puzzle {puzzle.puzzle_id}[/bold cyan] {puzzle.game_type}")
        if puzzle.blunderer_rating is None:
            console.print("[yellow]This puzzle has no player ratings; switching to free play only.[/yellow]")

        await session.present(on_step=lambda index, record: self._show_step(session, index, record))

        if puzzle.blunderer_rating is not None:
            guess = await asyncio.to_thread(
                IntPrompt.ask, f"Guess the rating of the {puzzle.timeline.blunder.mover} player"
            )
            result = session.submit_rating_guess(guess)
            color = {"success": "green", "good": "cyan", "warning": "yellow"}.get(result.severity, "red")
            console.print(
                f"[{color}]{result.message}[/{color}] Actual rating: {result.actual} "
                f"(off by {result.difference}, streak {result.new_streak}, best {result.new_best})"
            )
        else:
            session.reveal()
        console.print(f"Solution: [green]{' '.join(puzzle.solution_notation)}[/green]")

        choice = await asyncio.to_thread(Prompt.ask, "Find a better move?", choices=["better", "skip"], default="better")
        if choice == "skip":
            session.skip()
            return

        setup = session.find_better_move()
        self._show_board(session, last_move=setup.uci if setup else None)

        while session.phase == RatingPhase.FREE_PLAY:
            move = await asyncio.to_thread(Prompt.ask, "Your move (SAN or UCI, 'skip' to give up)")
            if move.strip().lower() == "skip":
                session.skip()
                break
            grade = await session.play_move(move)
            if grade is None:
                console.print("[yellow]Illegal move, try again.[/yellow]")
                continue
            self._show_board(session, last_move=grade.move)
            console.print(f"[bold]{grade.notation}[/bold]: {grade.message}")
            if grade.user_evaluation is not None:
                console.print(f"Evaluation after your move: {format_evaluation(grade.user_evaluation.to_mover_perspective())}")
            if grade.best_move and grade.best_move != grade.move:
                console.print(f"Engine preferred: {grade.best_move}")

    # -- blunder guess -----------------------------------------------------

    async def _play_blunder(self, session: BlunderGuessSession) -> None:
        puzzle = session.puzzle
        console.print(f"\n[bold cyan]Puzzle {puzzle.puzzle_id}[/bold cyan]: find the move that was played.")
        await session.present()
        setup = puzzle.opponent_setup_move
        self._show_board(session, last_move=setup.uci if setup else None)
        console.print("Commands: a move, 'hint', 'reveal', 'back', 'forward', 'return'")

        while session.phase == BlunderPhase.AWAITING_GUESS:
            command = (await asyncio.to_thread(Prompt.ask, "Your guess")).strip()
            lowered = command.lower()

            if lowered == "hint":
                square = session.hint()
                console.print(f"The blunder was played from [yellow]{square}[/yellow].")
                self._show_board(session)
            elif lowered == "reveal":
                if not session.hint_used:
                    console.print("[yellow]Ask for a hint first.[/yellow]")
                    continue
                blunder = session.reveal()
                console.print(f"The blunder was [red]{blunder.notation}[/red].")
            elif lowered in ("back", "forward"):
                if lowered == "back":
                    session.step_back()
                else:
                    session.step_forward()
                self._show_board(session)
                if session.in_review:
                    console.print("[dim]Reviewing the game. Type 'return' to continue guessing.[/dim]")
            elif lowered == "return":
                session.return_to_puzzle()
                self._show_board(session)
            elif session.in_review:
                console.print("[yellow]Type 'return' before guessing.[/yellow]")
            else:
                feedback = await session.submit_guess(command)
                if feedback is None:
                    console.print("[yellow]Illegal move, try again.[/yellow]")
                elif feedback.correct:
                    console.print(f"[green]{feedback.message}[/green] ({feedback.attempts} attempts)")
                else:
                    console.print(f"[red]{feedback.notation}[/red]: {feedback.message}")

        self._show_board(session, last_move=puzzle.blunder_uci)
        console.print(render_move_list(puzzle.timeline, session.cursor))
        if puzzle.game_url:
            console.print(f"Game: {puzzle.game_url}")

    # -- display -----------------------------------------------------------

    def _show_step(self, session: Session, index: int, record: MoveRecord) -> None:
        title = "Blunder!" if index == session.timeline.blunder_index else record.notation
        console.print(self.renderer.render_position(record.resulting_position, record.uci, title=title))
        console.print(render_move_list(session.timeline, index, upto=index))

    def _show_board(self, session: Session, last_move: Optional[str] = None) -> None:
        hints = [session.hint_square] if isinstance(session, BlunderGuessSession) and session.hint_square else []
        console.print(self.renderer.render_position(session.board_position, last_move, hints))

    async def _confirm(self, question: str) -> bool:
        return await asyncio.to_thread(Confirm.ask, question, default=True)


def show_stats(accumulator: ScoreAccumulator) -> None:
    """Print the running statistics."""
    table = Table(title="Your statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Rating guesses", str(accumulator.total_guesses))
    table.add_row("Average miss", f"{accumulator.average_rating_difference:.0f}")
    table.add_row("Current streak", str(accumulator.current_streak))
    table.add_row("Best streak", str(accumulator.best_streak))
    table.add_row("Move points", f"{accumulator.total_move_points} ({accumulator.average_move_points:.0f} avg)")
    table.add_row("Blunders found", str(accumulator.puzzles_solved))
    console.print(table)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="Blunder Trainer - learn from real blunders in real games",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Quick Start Examples:
  # Guess the rating of the player who blundered (random Lichess puzzle)
  %(prog)s

  # Find the blunder in today's Lichess puzzle
  %(prog)s --mode blunder --daily

  # Play from a downloaded Lichess puzzle database
  %(prog)s --puzzle-file lichess_db_puzzle.csv
        """
    )

    parser.add_argument("--mode", choices=["rating", "blunder"], default="rating",
                        help="rating: guess the blunderer's rating; blunder: find the blunder (default: rating)")

    source_group = parser.add_mutually_exclusive_group()
    source_group.add_argument("--puzzle-id", type=str, help="Play a specific puzzle")
    source_group.add_argument("--daily", action="store_true", help="Play the puzzle of the day")

    parser.add_argument("--puzzle-file", type=str, help="Lichess puzzle CSV export to play offline")
    parser.add_argument("--min-rating", type=int, default=1000, help="Minimum puzzle rating for --puzzle-file")
    parser.add_argument("--max-rating", type=int, default=2500, help="Maximum puzzle rating for --puzzle-file")

    parser.add_argument("--stockfish", type=str, help="Path to the Stockfish binary")
    parser.add_argument("--depth", type=int, default=15, help="Evaluation depth (default: %(default)s)")

    parser.add_argument("--stats-db", type=str, default="data/stats.db", help="Statistics database (default: %(default)s)")
    parser.add_argument("--profile", type=str, default="default", help="Statistics profile name")
    parser.add_argument("--stats", action="store_true", help="Show statistics and exit")

    parser.add_argument("--verbose", action="store_true", help="Show log output")

    return parser


async def main_async(args: argparse.Namespace) -> int:
    """Main async entry point."""
    config = Config(
        stockfish_path=args.stockfish,
        eval_depth=args.depth,
        puzzle_file=args.puzzle_file,
        min_rating=args.min_rating,
        max_rating=args.max_rating,
        stats_db_path=args.stats_db,
        stats_key=args.profile,
    )

    stats_store = StatsStore(Path(config.stats_db_path))
    if args.stats:
        show_stats(stats_store.load(config.stats_key))
        return 0

    try:
        if config.puzzle_file:
            provider: PuzzleProvider = PuzzleDatabase(Path(config.puzzle_file), config)
        else:
            provider = LichessClient(config)
    except FetchError as e:
        console.print(f"[bold red]{e}[/bold red]")
        return 1

    engine_path = autodetect_stockfish(config.stockfish_path)
    if not engine_path:
        console.print(f"[yellow]{get_friendly_stockfish_hint()}[/yellow]")
    else:
        logger.info(f"Using Stockfish: {engine_path}")

    gateway = EvaluationGateway(engine_path, config)
    try:
        app = TrainerApp(config, args.mode, provider, gateway, stats_store)
        return await app.run(puzzle_id=args.puzzle_id, daily=args.daily)
    except Exception as e:
        console.print(f"\n[bold red]Trainer failed: {e}[/bold red]")
        logger.exception("Trainer failed with exception")
        return 1
    finally:
        await gateway.stop()


def main() -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args()
    setup_logging(verbose=args.verbose)

    try:
        return asyncio.run(main_async(args))
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Interrupted by user[/bold yellow]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
