"""
Evaluation gateway for the Blunder Trainer.

This module wraps a single UCI engine process (typically Stockfish) that scores
positions for the grading logic. The engine is a shared, stateful resource that
can only run one search at a time, so the gateway serializes requests, streams
progress into an accumulator and hands back one immutable sample per search.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import chess
import chess.engine as chess_engine

from .models import Config, EvaluationSample, MATE_SCORE

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], Awaitable[Any]]


class EvaluationError(Exception):
    """Base exception for evaluation failures."""
    pass


class EvaluationInitError(EvaluationError):
    """The engine could not be started."""
    pass


class EvaluationTimeout(EvaluationError):
    """A search did not complete in time."""
    pass


class EvaluationBusyError(EvaluationError):
    """A new search was requested while another one is still running."""
    pass


class EvaluationCancelledError(EvaluationError):
    """The search was cancelled before it completed."""
    pass


def mate_to_centipawns(mate: int) -> int:
    """
    Convert a mate distance to a large centipawn value.

    Shorter mates rank higher. A distance of 0 means the side to move is
    already mated.
    """
    if mate > 0:
        return MATE_SCORE - mate * 100
    return -MATE_SCORE - mate * 100


@dataclass
class _Accumulator:
    """Progress collected from streamed engine info lines."""

    position: str
    score: Optional[int] = None
    mate: Optional[int] = None
    depth: int = 0
    pv_move: Optional[str] = None

    def update(self, info: chess_engine.InfoDict) -> None:
        if "depth" in info:
            self.depth = info["depth"]

        pov_score = info.get("score")
        if pov_score is not None:
            relative = pov_score.relative
            if relative.is_mate():
                self.mate = relative.mate()
                self.score = mate_to_centipawns(self.mate)
            else:
                self.mate = None
                self.score = relative.score()

        pv = info.get("pv")
        if pv:
            self.pv_move = pv[0].uci()

    def to_sample(self, best_move: Optional[chess.Move]) -> EvaluationSample:
        move = best_move.uci() if best_move else self.pv_move
        return EvaluationSample(
            score=self.score if self.score is not None else 0,
            mate_distance=self.mate,
            best_move=move,
            depth=self.depth,
            position=self.position,
        )


@dataclass
class _Request:
    position: str
    depth: int
    analysis: Optional[Any] = None
    cancelled: bool = False


async def _open_uci(engine_path: str) -> Any:
    _, protocol = await chess_engine.popen_uci(engine_path)
    return protocol


class EvaluationGateway:
    """
    Single-owner handle around one UCI engine.

    ``evaluate`` and ``cancel`` are the only operations that touch the engine.
    A second ``evaluate`` while one is in flight is rejected instead of queued,
    so a result can never be handed to the wrong caller.
    """

    def __init__(self, engine_path: Optional[str], config: Config,
                 engine_factory: Optional[EngineFactory] = None):
        """
        Initialize the gateway.

        Args:
            engine_path: Path to the UCI engine executable (None disables evaluation)
            config: Global configuration object
            engine_factory: Coroutine factory returning an engine protocol, used instead
                of launching ``engine_path``
        """
        self.engine_path = engine_path
        self.config = config
        self._engine_factory = engine_factory
        self._engine: Optional[Any] = None
        self._current: Optional[_Request] = None
        self._engine_name: str = "Unknown"

    async def start(self) -> None:
        """Start the UCI engine within the configured timeout."""
        if self._engine is not None:
            return

        if self._engine_factory is None and not self.engine_path:
            raise EvaluationInitError("No evaluation engine configured")

        factory = self._engine_factory or (lambda: _open_uci(self.engine_path))
        try:
            self._engine = await asyncio.wait_for(factory(), timeout=self.config.engine_init_timeout)
        except asyncio.TimeoutError as e:
            raise EvaluationInitError(
                f"Engine did not start within {self.config.engine_init_timeout:.0f}s"
            ) from e
        except Exception as e:
            raise EvaluationInitError(f"Failed to start engine at {self.engine_path}: {e}") from e

        engine_id = getattr(self._engine, "id", None) or {}
        self._engine_name = engine_id.get("name", "Unknown Engine")
        logger.info(f"Started evaluation engine: {self._engine_name}")

    async def stop(self) -> None:
        """Stop the engine and clean up resources."""
        if self._engine is None:
            return

        self.cancel()
        try:
            await self._engine.quit()
            logger.info("Evaluation engine stopped")
        except Exception as e:
            logger.warning(f"Error stopping engine: {e}")
        finally:
            self._engine = None

    async def evaluate(self, position: str, depth: Optional[int] = None) -> EvaluationSample:
        """
        Search a position to a fixed depth.

        Args:
            position: FEN of the position to evaluate
            depth: Search depth (defaults to ``config.eval_depth``)

        Returns:
            Sample with score and mate distance relative to the side to move

        Raises:
            EvaluationBusyError: If another search is still running
            EvaluationInitError: If the engine cannot be started
            EvaluationTimeout: If the search does not finish in time
            EvaluationCancelledError: If ``cancel`` was called meanwhile
            EvaluationError: For any other engine failure
        """
        if self._current is not None:
            raise EvaluationBusyError(
                f"Evaluation of {self._current.position} still running"
            )

        request = _Request(position=position, depth=depth or self.config.eval_depth)
        self._current = request
        try:
            await self.start()
            if request.cancelled:
                raise EvaluationCancelledError(f"Evaluation of {position} cancelled")
            try:
                return await asyncio.wait_for(self._search(request), timeout=self.config.eval_timeout)
            except asyncio.TimeoutError as e:
                raise EvaluationTimeout(
                    f"Evaluation of {position} exceeded {self.config.eval_timeout:.0f}s"
                ) from e
        finally:
            if self._current is request:
                self._current = None

    async def _search(self, request: _Request) -> EvaluationSample:
        try:
            board = chess.Board(request.position)
        except ValueError as e:
            raise EvaluationError(f"Invalid position {request.position}: {e}") from e

        accumulator = _Accumulator(position=request.position)
        try:
            with await self._engine.analysis(board, chess_engine.Limit(depth=request.depth)) as analysis:
                request.analysis = analysis
                if request.cancelled:
                    analysis.stop()
                async for info in analysis:
                    accumulator.update(info)
                best = await analysis.wait()
        except chess_engine.EngineTerminatedError as e:
            self._engine = None
            raise EvaluationError(f"Engine terminated: {e}") from e
        except chess_engine.EngineError as e:
            raise EvaluationError(f"Position analysis failed: {e}") from e

        if request.cancelled:
            raise EvaluationCancelledError(f"Evaluation of {request.position} cancelled")

        sample = accumulator.to_sample(best.move if best else None)
        logger.debug(
            f"Evaluated {request.position}: score {sample.score}, mate {sample.mate_distance}, "
            f"best {sample.best_move}, depth {sample.depth}"
        )
        return sample

    def cancel(self) -> None:
        """Stop the running search, if any."""
        request = self._current
        if request is None or request.cancelled:
            return

        request.cancelled = True
        if request.analysis is not None:
            request.analysis.stop()
        logger.debug(f"Cancelled evaluation of {request.position}")

    @property
    def busy(self) -> bool:
        """True while a search is in flight."""
        return self._current is not None

    @property
    def is_running(self) -> bool:
        """True if the engine process is up."""
        return self._engine is not None

    @property
    def engine_name(self) -> str:
        return self._engine_name

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit with cleanup."""
        await self.stop()


def autodetect_stockfish(cli_path: Optional[str] = None) -> Optional[str]:
    """
    Auto-detect Stockfish installation path.

    Search order:
    1. Explicit CLI path argument
    2. STOCKFISH_PATH environment variable
    3. System PATH lookup
    4. Common installation directories

    Args:
        cli_path: Explicitly provided path (highest priority)

    Returns:
        Path to Stockfish executable if found, None otherwise
    """
    if cli_path and Path(cli_path).exists():
        return cli_path

    env_path = os.getenv("STOCKFISH_PATH")
    if env_path and Path(env_path).exists():
        return env_path

    which_path = shutil.which("stockfish")
    if which_path:
        return which_path

    common_paths = [
        "/usr/local/bin/stockfish",
        "/usr/bin/stockfish",
        "/usr/games/stockfish",
        "/opt/homebrew/bin/stockfish",
        "C:/Program Files/Stockfish/stockfish.exe",
    ]

    for path in common_paths:
        if Path(path).exists():
            return path

    return None


def get_friendly_stockfish_hint() -> str:
    """
    Get a user-friendly message about how to install Stockfish.

    Returns:
        Formatted installation instructions
    """
    return (
        "Stockfish not found. Puzzles still work, but moves are not evaluated.\n"
        "• macOS:    brew install stockfish\n"
        "• Ubuntu:   sudo apt-get install stockfish\n"
        "• Windows:  choco install stockfish\n"
        "\nOr set environment variable: export STOCKFISH_PATH=/path/to/stockfish"
    )
