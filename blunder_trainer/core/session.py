"""
Puzzle session state machines for the Blunder Trainer.

A session owns one reconstructed puzzle for as long as it is displayed. It
drives the move playback, keeps the navigable cursor, calls the evaluation
gateway and the grading functions in response to player actions and writes
graded results to the statistics store.

Two variants exist:

    RatingGuessSession   PRESENTING -> GUESSING -> REVEALED -> FREE_PLAY -> FINAL
    BlunderGuessSession  PRESENTING -> AWAITING_GUESS -> SOLVED

Every public action is checked against an explicit table of the actions each
phase accepts; anything else raises ``InvalidTransitionError``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from .engine import EvaluationGateway, EvaluationError
from .grading import (
    FALLBACK_MESSAGE,
    RatingGuessResult,
    centipawn_loss,
    describe_mistake,
    grade_move_quality,
    grade_rating_guess,
)
from .models import Config, EvaluationSample, MoveRecord, ReconstructedPuzzle, ScoreAccumulator
from .positions import positions_match
from .rules import ReplayResult, RulesEngine
from .stats import StatsError, StatsStore

logger = logging.getLogger(__name__)

# Cursor value for the position before the first recorded move
BEFORE_HISTORY = -1

StepCallback = Callable[[int, MoveRecord], None]
Sleep = Callable[[float], Awaitable[None]]


class InvalidTransitionError(Exception):
    """Raised when an action is not allowed in the current phase."""
    pass


class SessionClosedError(InvalidTransitionError):
    """Raised when a torn-down session is used or a late result arrives."""
    pass


class RatingPhase(Enum):
    """Phases of the guess-the-rating puzzle."""

    PRESENTING = "presenting"
    GUESSING = "guessing"
    REVEALED = "revealed"
    FREE_PLAY = "free_play"
    FINAL = "final"


class BlunderPhase(Enum):
    """Phases of the find-the-blunder puzzle."""

    PRESENTING = "presenting"
    AWAITING_GUESS = "awaiting_guess"
    SOLVED = "solved"


@dataclass(frozen=True)
class MoveGrade:
    """Result of a graded free-play move."""

    move: str
    notation: str
    points: Optional[int]
    message: str
    centipawn_loss: Optional[int] = None
    user_evaluation: Optional[EvaluationSample] = None
    best_evaluation: Optional[EvaluationSample] = None
    best_move: Optional[str] = None


@dataclass(frozen=True)
class GuessFeedback:
    """Response to one find-the-blunder guess."""

    move: str
    notation: str
    correct: bool
    message: str
    attempts: int
    evaluation: Optional[EvaluationSample] = None


class PuzzleSession(ABC):
    """
    Shared machinery of both session variants.

    Subclasses define ``ACTIONS`` (phase -> allowed action names),
    ``navigable_range`` and the phase-specific operations.
    """

    ACTIONS: Dict[Enum, Set[str]] = {}

    def __init__(
        self,
        puzzle: ReconstructedPuzzle,
        gateway: EvaluationGateway,
        config: Config,
        stats_store: Optional[StatsStore] = None,
        rules: Optional[RulesEngine] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the session.

        Args:
            puzzle: Puzzle owned by this session
            gateway: Shared evaluation gateway
            config: Global configuration
            stats_store: Store for running statistics (None keeps them in memory)
            rules: Rules engine collaborator
            sleep: Coroutine used for playback and reset delays
        """
        self.puzzle = puzzle
        self.timeline = puzzle.timeline
        self.gateway = gateway
        self.config = config
        self.rules = rules or RulesEngine()
        self._stats = stats_store
        self._sleep = sleep

        self.accumulator = stats_store.load(config.stats_key) if stats_store else ScoreAccumulator()
        self.attempts = 0
        self.cursor = BEFORE_HISTORY
        self.live_position: Optional[str] = None
        self._live_cursor: Optional[int] = None

        self._closed = False
        self._evaluating = False
        self._tasks: Set[asyncio.Task] = set()

    # -- phase bookkeeping -------------------------------------------------

    phase: Enum

    def _require(self, action: str) -> None:
        if self._closed:
            raise SessionClosedError(f"Session for puzzle {self.puzzle.puzzle_id} is closed")
        if action not in self.ACTIONS.get(self.phase, set()):
            raise InvalidTransitionError(f"Cannot {action} while {self.phase.value}")

    def can(self, action: str) -> bool:
        """True if the action is accepted in the current phase."""
        return not self._closed and action in self.ACTIONS.get(self.phase, set())

    @property
    def closed(self) -> bool:
        return self._closed

    # -- navigation --------------------------------------------------------

    @property
    @abstractmethod
    def navigable_range(self) -> Tuple[int, int]:
        """Inclusive cursor bounds allowed in the current phase."""

    def position_at(self, cursor: int) -> str:
        """FEN shown when the cursor is at the given index."""
        if cursor == BEFORE_HISTORY:
            return self.puzzle.starting_position
        return self.timeline[cursor].resulting_position

    @property
    def in_review(self) -> bool:
        """True while the player browses away from the live position."""
        return self._live_cursor is not None and self.cursor != self._live_cursor

    @property
    def board_position(self) -> str:
        """FEN currently on the board."""
        if self.live_position is not None and not self.in_review:
            return self.live_position
        return self.position_at(self.cursor)

    def go_to(self, index: int) -> int:
        """Move the cursor, clamped to the navigable range."""
        self._require("navigate")
        low, high = self.navigable_range
        self.cursor = max(low, min(high, index))
        return self.cursor

    def step_back(self) -> int:
        return self.go_to(self.cursor - 1)

    def step_forward(self) -> int:
        return self.go_to(self.cursor + 1)

    def go_first(self) -> int:
        return self.go_to(self.navigable_range[0])

    def go_last(self) -> int:
        return self.go_to(self.navigable_range[1])

    def return_to_puzzle(self) -> int:
        """Leave review and restore the live position."""
        self._require("return_to_puzzle")
        if self._live_cursor is not None:
            self.cursor = self._live_cursor
        return self.cursor

    # -- playback ----------------------------------------------------------

    async def _play(self, start: int, stop: int, on_step: Optional[StepCallback]) -> bool:
        """
        Step the cursor through ``start..stop`` inclusive.

        Pauses longer after the blunder than after any other move. Returns
        False if the session was closed during playback.
        """
        blunder_index = self.timeline.blunder_index
        self.cursor = start - 1
        for index in range(start, stop + 1):
            if self._closed:
                return False
            self.cursor = index
            if on_step:
                on_step(index, self.timeline[index])
            if index < stop:
                delay = self.config.blunder_pause if index == blunder_index else self.config.solution_pause
                await self._sleep(delay)
        return not self._closed

    # -- evaluation --------------------------------------------------------

    async def _evaluate(self, position: str) -> EvaluationSample:
        """Evaluate through the gateway, discarding results that arrive after close."""
        if self._closed:
            raise SessionClosedError("Session closed before evaluation")
        self._evaluating = True
        try:
            sample = await self.gateway.evaluate(position, self.config.eval_depth)
        finally:
            self._evaluating = False
        if self._closed:
            raise SessionClosedError(f"Discarding evaluation of {position} after close")
        return sample

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- statistics --------------------------------------------------------

    def _persist(self, updated: ScoreAccumulator) -> bool:
        """Write new counters; memory only changes if the write succeeded."""
        if self._stats is not None:
            try:
                self._stats.save(self.config.stats_key, updated)
            except StatsError as e:
                logger.warning(f"Statistics not saved: {e}")
                return False
        self.accumulator = updated
        return True

    # -- teardown ----------------------------------------------------------

    def close(self) -> None:
        """Tear the session down; pending timers and evaluations are abandoned."""
        if self._closed:
            return
        self._closed = True
        if self._evaluating:
            self.gateway.cancel()
        for task in list(self._tasks):
            task.cancel()
        logger.debug(f"Closed session for puzzle {self.puzzle.puzzle_id}")


class RatingGuessSession(PuzzleSession):
    """Watch the blunder, guess the blunderer's rating, then try to improve on it."""

    ACTIONS = {
        RatingPhase.PRESENTING: {"present"},
        RatingPhase.GUESSING: {"submit_rating_guess", "reveal", "navigate"},
        RatingPhase.REVEALED: {"find_better_move", "skip", "navigate"},
        RatingPhase.FREE_PLAY: {"play_move", "skip", "navigate", "return_to_puzzle"},
        RatingPhase.FINAL: {"navigate"},
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.phase = RatingPhase.PRESENTING
        self.rating_guess: Optional[int] = None
        self.rating_result: Optional[RatingGuessResult] = None
        self.best_move_baseline: Optional[EvaluationSample] = None
        self.known_best_move: Optional[str] = None
        self.user_move_evaluation: Optional[EvaluationSample] = None
        self.move_grade: Optional[MoveGrade] = None
        self._user_move: Optional[str] = None
        self._baseline_task: Optional[asyncio.Task] = None

    @property
    def navigable_range(self) -> Tuple[int, int]:
        return self.timeline.blunder_index - 1, self.timeline.last_index

    @property
    def revealed_difference(self) -> Optional[int]:
        return self.rating_result.difference if self.rating_result else None

    async def present(self, on_step: Optional[StepCallback] = None) -> None:
        """Play the setup, the blunder and its punishment, then ask for a guess."""
        self._require("present")
        self._baseline_task = self._spawn(self._compute_baseline())

        start = max(self.timeline.blunder_index - 1, 0)
        if await self._play(start, self.timeline.last_index, on_step):
            self.phase = RatingPhase.GUESSING
            logger.debug(f"Puzzle {self.puzzle.puzzle_id} waiting for rating guess")

    async def _compute_baseline(self) -> Optional[EvaluationSample]:
        """
        Find the best move before the blunder and score the position it leads to.

        Runs in the background from the start of the presentation; only the
        free-play grading reads it.
        """
        position = self.puzzle.pre_blunder_position
        try:
            search = await self._evaluate(position)
            if not search.best_move:
                return None
            after = self.rules.replay(position, search.best_move).resulting_position
            baseline = await self._evaluate(after)
        except SessionClosedError:
            return None
        except EvaluationError as e:
            logger.warning(f"Baseline evaluation unavailable: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Engine best move could not be replayed: {e}")
            return None

        self.known_best_move = search.best_move
        self.best_move_baseline = baseline
        return baseline

    def submit_rating_guess(self, guess: int) -> RatingGuessResult:
        """Grade the guess and reveal the answer."""
        self._require("submit_rating_guess")
        actual = self.puzzle.blunderer_rating
        if actual is None:
            raise InvalidTransitionError(f"Puzzle {self.puzzle.puzzle_id} has no rating to guess")

        result = grade_rating_guess(
            guess, actual, self.accumulator.current_streak, self.accumulator.best_streak
        )
        self._persist(self.accumulator.with_rating_guess(result.difference, result.new_streak, result.new_best))

        self.attempts += 1
        self.rating_guess = guess
        self.rating_result = result
        self.phase = RatingPhase.REVEALED
        logger.info(f"Rating guess {guess} vs {actual}: {result.verdict}")
        return result

    def reveal(self) -> None:
        """Show the solution without grading a guess (for unrated games)."""
        self._require("reveal")
        if self.puzzle.blunderer_rating is not None:
            raise InvalidTransitionError("Rated puzzles must be guessed before the reveal")
        self.phase = RatingPhase.REVEALED

    def find_better_move(self) -> Optional[MoveRecord]:
        """Reset the board to before the blunder and let the player try."""
        self._require("find_better_move")
        self._live_cursor = self.cursor = self.timeline.blunder_index - 1
        self.live_position = self.puzzle.pre_blunder_position
        self.phase = RatingPhase.FREE_PLAY
        return self.puzzle.opponent_setup_move

    def skip(self) -> None:
        """Finish the puzzle without (further) moves."""
        self._require("skip")
        if self._user_move is not None:
            raise InvalidTransitionError("A move is already being graded")
        self.phase = RatingPhase.FINAL

    async def play_move(self, move: str) -> Optional[MoveGrade]:
        """
        Grade the player's alternative to the blunder.

        Illegal moves are ignored and return None.
        """
        self._require("play_move")
        if self.in_review:
            raise InvalidTransitionError("Return to the puzzle before moving")
        if self._user_move is not None:
            raise InvalidTransitionError("A move is already being graded")

        try:
            result = self.rules.replay(self.puzzle.pre_blunder_position, move)
        except ValueError:
            logger.debug(f"Ignoring illegal move {move!r}")
            return None

        self._user_move = result.uci
        self.live_position = result.resulting_position

        baseline = await self._baseline_result()
        user_eval: Optional[EvaluationSample] = None
        try:
            user_eval = await self._evaluate(result.resulting_position)
        except SessionClosedError:
            raise
        except EvaluationError as e:
            logger.warning(f"Move evaluation unavailable: {e}")

        self.user_move_evaluation = user_eval
        grade = self._grade(result, user_eval, baseline)
        if grade.points is not None:
            self._persist(self.accumulator.with_move_points(grade.points))

        self.attempts += 1
        self.move_grade = grade
        self.phase = RatingPhase.FINAL
        return grade

    async def _baseline_result(self) -> Optional[EvaluationSample]:
        if self._baseline_task is None:
            return None
        baseline = await self._baseline_task
        if self._closed:
            raise SessionClosedError("Discarding baseline after close")
        return baseline

    def _grade(
        self,
        result: ReplayResult,
        user_eval: Optional[EvaluationSample],
        baseline: Optional[EvaluationSample],
    ) -> MoveGrade:
        if result.uci == self.known_best_move:
            points, loss = 100, 0
        elif user_eval is not None and baseline is not None:
            points = grade_move_quality(user_eval, baseline, result.uci, self.known_best_move)
            loss = centipawn_loss(user_eval, baseline)
        else:
            return MoveGrade(
                move=result.uci,
                notation=result.notation,
                points=None,
                message="Evaluation unavailable, this move could not be graded.",
                user_evaluation=user_eval,
                best_evaluation=baseline,
                best_move=self.known_best_move,
            )

        if result.uci == self.puzzle.blunder_uci:
            message = "That's the move that was played in the game."
        elif points == 100:
            message = "Best move!"
        else:
            message = f"{points} points, {loss} centipawns short of the best move."

        return MoveGrade(
            move=result.uci,
            notation=result.notation,
            points=points,
            message=message,
            centipawn_loss=loss,
            user_evaluation=user_eval,
            best_evaluation=baseline,
            best_move=self.known_best_move,
        )


class BlunderGuessSession(PuzzleSession):
    """Find the move that was actually played and lost the game."""

    ACTIONS = {
        BlunderPhase.PRESENTING: {"present"},
        BlunderPhase.AWAITING_GUESS: {"submit_guess", "hint", "reveal", "navigate", "return_to_puzzle"},
        BlunderPhase.SOLVED: {"navigate", "return_to_puzzle"},
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.phase = BlunderPhase.PRESENTING
        self.hint_square: Optional[str] = None
        self.revealed = False
        self.blunder_evaluation: Optional[EvaluationSample] = None
        self.wrong_guesses: List[GuessFeedback] = []
        self._baseline_task: Optional[asyncio.Task] = None
        self._reset_task: Optional[asyncio.Task] = None

    @property
    def navigable_range(self) -> Tuple[int, int]:
        if self.phase == BlunderPhase.SOLVED:
            return BEFORE_HISTORY, self.timeline.last_index
        return BEFORE_HISTORY, self.timeline.blunder_index - 1

    @property
    def hint_used(self) -> bool:
        return self.hint_square is not None

    @property
    def reset_pending(self) -> bool:
        return self._reset_task is not None and not self._reset_task.done()

    async def present(self, on_step: Optional[StepCallback] = None) -> None:
        """Show the opponent's last move and wait for a guess."""
        self._require("present")
        self._baseline_task = self._spawn(self._evaluate_blunder())

        blunder_index = self.timeline.blunder_index
        setup = blunder_index - 1
        if setup >= 0:
            if not await self._play(setup, setup, on_step):
                return
        else:
            self.cursor = BEFORE_HISTORY

        self._live_cursor = self.cursor
        self.live_position = self.puzzle.pre_blunder_position
        self.phase = BlunderPhase.AWAITING_GUESS

    async def _evaluate_blunder(self) -> Optional[EvaluationSample]:
        try:
            sample = await self._evaluate(self.puzzle.post_blunder_position)
        except SessionClosedError:
            return None
        except EvaluationError as e:
            logger.warning(f"Blunder evaluation unavailable: {e}")
            return None
        self.blunder_evaluation = sample
        return sample

    async def submit_guess(self, move: str) -> Optional[GuessFeedback]:
        """
        Check whether the move is the historical blunder.

        Illegal moves are ignored and return None. Wrong guesses get
        evaluation-based feedback when the blunder's evaluation is already
        known, the fixed fallback message otherwise, and the board resets after
        a short delay.
        """
        self._require("submit_guess")
        if self.in_review:
            raise InvalidTransitionError("Return to the puzzle before guessing")

        try:
            result = self.rules.replay(self.puzzle.pre_blunder_position, move)
        except ValueError:
            logger.debug(f"Ignoring illegal guess {move!r}")
            return None

        self._cancel_reset()
        self.attempts += 1

        if positions_match(result.resulting_position, self.puzzle.post_blunder_position):
            self._solve()
            self._persist(self.accumulator.with_solved_puzzle(self.attempts))
            logger.info(f"Puzzle {self.puzzle.puzzle_id} solved in {self.attempts} attempts")
            return GuessFeedback(
                move=result.uci,
                notation=result.notation,
                correct=True,
                message="You found the blunder!",
                attempts=self.attempts,
            )

        self.live_position = result.resulting_position
        message = FALLBACK_MESSAGE
        evaluation: Optional[EvaluationSample] = None

        if self.blunder_evaluation is not None and not self._evaluating:
            try:
                evaluation = await self._evaluate(result.resulting_position)
                message = describe_mistake(evaluation, self.blunder_evaluation)
            except SessionClosedError:
                raise
            except EvaluationError as e:
                logger.warning(f"Guess evaluation unavailable: {e}")

        feedback = GuessFeedback(
            move=result.uci,
            notation=result.notation,
            correct=False,
            message=message,
            attempts=self.attempts,
            evaluation=evaluation,
        )
        self.wrong_guesses.append(feedback)
        if self.phase == BlunderPhase.AWAITING_GUESS:
            self._reset_task = self._spawn(self._reset_after_delay())
        return feedback

    async def _reset_after_delay(self) -> None:
        await self._sleep(self.config.wrong_guess_reset_delay)
        if not self._closed and self.phase == BlunderPhase.AWAITING_GUESS:
            self.live_position = self.puzzle.pre_blunder_position

    def _cancel_reset(self) -> None:
        if self.reset_pending:
            self._reset_task.cancel()
        self._reset_task = None
        self.live_position = self.puzzle.pre_blunder_position

    def hint(self) -> str:
        """Reveal the square the blunder was played from."""
        self._require("hint")
        self.hint_square = self.timeline.blunder.origin
        return self.hint_square

    def reveal(self) -> MoveRecord:
        """Give up after a hint and show the blunder."""
        self._require("reveal")
        if not self.hint_used:
            raise InvalidTransitionError("Ask for a hint before revealing the blunder")
        self._cancel_reset()
        self.revealed = True
        self._solve()
        return self.timeline.blunder

    def _solve(self) -> None:
        self.phase = BlunderPhase.SOLVED
        self._live_cursor = self.cursor = self.timeline.blunder_index
        self.live_position = self.puzzle.post_blunder_position
