"""
Unit tests for the puzzle session state machines.

Both variants are driven through Fool's mate (1. f3 e5 2. g4?? Qh4#) with a
scripted gateway and an instant sleep.
"""

import asyncio
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import chess

from blunder_trainer.core.grading import AVOIDED_DISASTER_MESSAGE, FALLBACK_MESSAGE
from blunder_trainer.core.models import Config, EvaluationSample, ScoreAccumulator
from blunder_trainer.core.positions import normalize_fen
from blunder_trainer.core.session import (
    BEFORE_HISTORY,
    BlunderGuessSession,
    BlunderPhase,
    InvalidTransitionError,
    RatingGuessSession,
    RatingPhase,
    SessionClosedError,
)
from blunder_trainer.core.stats import StatsError, StatsStore
from blunder_trainer.core.timeline import reconstruct_puzzle
from tests.fakes import FakeGateway, SleepRecorder, async_test, fen_after, fools_mate_record, settle

PRE_BLUNDER = fen_after("f3", "e5")
POST_BLUNDER = fen_after("f3", "e5", "g4")
AFTER_BEST = fen_after("f3", "e5", "Nc3")
AFTER_G3 = fen_after("f3", "e5", "g3")

# Raw gateway samples: scored for the side to move after each move
SAMPLES = {
    PRE_BLUNDER: EvaluationSample(score=-120, best_move="b1c3", depth=15, position=PRE_BLUNDER),
    AFTER_BEST: EvaluationSample(score=-30, depth=15, position=AFTER_BEST),
    AFTER_G3: EvaluationSample(score=20, depth=15, position=AFTER_G3),
    POST_BLUNDER: EvaluationSample(score=9900, mate_distance=1, best_move="d8h4", depth=15, position=POST_BLUNDER),
}


class SessionTestCase(unittest.TestCase):
    """Shared fixtures."""

    session_class = None

    def setUp(self):
        self.puzzle = reconstruct_puzzle(fools_mate_record())
        self.config = Config()
        self.sleep = SleepRecorder()
        self.gateway = FakeGateway(SAMPLES)

    def make_session(self, stats_store=None, puzzle=None):
        return self.session_class(
            puzzle or self.puzzle, self.gateway, self.config, stats_store, sleep=self.sleep
        )


class RatingGuessSessionTests(SessionTestCase):
    """Test the guess-the-rating flow."""

    session_class = RatingGuessSession

    @async_test
    async def test_presentation_plays_from_setup_move(self):
        session = self.make_session()
        steps = []

        await session.present(on_step=lambda index, record: steps.append((index, record.notation)))

        self.assertEqual(steps, [(1, "e5"), (2, "g4"), (3, "Qh4#")])
        self.assertEqual(self.sleep.delays, [self.config.solution_pause, self.config.blunder_pause])
        self.assertEqual(session.phase, RatingPhase.GUESSING)
        self.assertEqual(session.cursor, 3)

    @async_test
    async def test_baseline_is_computed_in_background(self):
        session = self.make_session()
        await session.present()
        await settle()

        self.assertEqual(session.known_best_move, "b1c3")
        self.assertEqual(session.best_move_baseline.position, AFTER_BEST)
        self.assertEqual(self.gateway.calls, [PRE_BLUNDER, AFTER_BEST])

    @async_test
    async def test_rating_guess(self):
        session = self.make_session()
        await session.present()

        result = session.submit_rating_guess(1250)

        self.assertEqual(result.actual, 1200)
        self.assertEqual(result.difference, 50)
        self.assertEqual(result.verdict, "near-exact")
        self.assertEqual(session.phase, RatingPhase.REVEALED)
        self.assertEqual(session.accumulator.total_guesses, 1)
        self.assertEqual(session.accumulator.current_streak, 1)

    @async_test
    async def test_actions_outside_their_phase(self):
        session = self.make_session()
        with self.assertRaises(InvalidTransitionError):
            session.submit_rating_guess(1500)
        with self.assertRaises(InvalidTransitionError):
            session.find_better_move()

        await session.present()
        with self.assertRaises(InvalidTransitionError):
            await session.play_move("b1c3")
        with self.assertRaises(InvalidTransitionError):
            await session.present()
        self.assertFalse(session.can("skip"))
        self.assertTrue(session.can("submit_rating_guess"))

    @async_test
    async def test_unrated_puzzle_cannot_be_guessed(self):
        puzzle = reconstruct_puzzle(fools_mate_record(players=[]))
        session = self.make_session(puzzle=puzzle)
        await session.present()

        with self.assertRaises(InvalidTransitionError):
            session.submit_rating_guess(1500)
        session.reveal()
        self.assertEqual(session.phase, RatingPhase.REVEALED)

    @async_test
    async def test_rated_puzzle_cannot_skip_the_guess(self):
        session = self.make_session()
        await session.present()

        with self.assertRaises(InvalidTransitionError):
            session.reveal()
        self.assertEqual(session.phase, RatingPhase.GUESSING)

    @async_test
    async def test_find_better_move_resets_board(self):
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)

        setup = session.find_better_move()

        self.assertEqual(setup.notation, "e5")
        self.assertEqual(session.phase, RatingPhase.FREE_PLAY)
        self.assertEqual(session.board_position, PRE_BLUNDER)
        self.assertEqual(session.cursor, 1)

    @async_test
    async def test_play_move_is_graded_against_baseline(self):
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.find_better_move()

        grade = await session.play_move("g3")

        self.assertEqual(grade.move, "g2g3")
        self.assertEqual(grade.centipawn_loss, 50)
        self.assertEqual(grade.points, 75)
        self.assertEqual(grade.best_move, "b1c3")
        self.assertEqual(session.phase, RatingPhase.FINAL)
        self.assertEqual(session.board_position, AFTER_G3)
        self.assertEqual(session.accumulator.total_move_points, 75)
        self.assertEqual(session.accumulator.moves_graded, 1)

    @async_test
    async def test_best_move_scores_full(self):
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.find_better_move()

        grade = await session.play_move("Nc3")

        self.assertEqual(grade.points, 100)
        self.assertEqual(grade.message, "Best move!")

    @async_test
    async def test_replaying_the_blunder(self):
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.find_better_move()

        grade = await session.play_move("g2g4")

        self.assertEqual(grade.points, 0)
        self.assertIn("played in the game", grade.message)

    @async_test
    async def test_illegal_move_is_ignored(self):
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.find_better_move()

        self.assertIsNone(await session.play_move("e1e5"))
        self.assertEqual(session.phase, RatingPhase.FREE_PLAY)
        self.assertEqual(session.board_position, PRE_BLUNDER)

    @async_test
    async def test_grading_without_evaluations(self):
        self.gateway.samples = {}
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.find_better_move()

        grade = await session.play_move("g3")

        self.assertIsNone(grade.points)
        self.assertEqual(session.phase, RatingPhase.FINAL)
        self.assertEqual(session.accumulator.moves_graded, 0)

    @async_test
    async def test_unplayable_engine_move_leaves_move_ungraded(self):
        self.gateway.samples[normalize_fen(PRE_BLUNDER)] = EvaluationSample(
            score=-120, best_move="e2e5", depth=15, position=PRE_BLUNDER
        )
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.find_better_move()

        grade = await session.play_move("g3")

        self.assertIsNone(grade.points)
        self.assertIsNone(session.best_move_baseline)
        self.assertEqual(session.phase, RatingPhase.FINAL)

    @async_test
    async def test_skip(self):
        session = self.make_session()
        await session.present()
        session.submit_rating_guess(1500)
        session.skip()
        self.assertEqual(session.phase, RatingPhase.FINAL)
        with self.assertRaises(InvalidTransitionError):
            session.skip()

    @async_test
    async def test_navigation_is_clamped(self):
        session = self.make_session()
        await session.present()

        self.assertEqual(session.navigable_range, (1, 3))
        self.assertEqual(session.go_to(-5), 1)
        self.assertEqual(session.board_position, PRE_BLUNDER)
        self.assertEqual(session.go_last(), 3)
        self.assertTrue(chess.Board(session.board_position).is_checkmate())
        self.assertEqual(session.step_forward(), 3)

    @async_test
    async def test_navigation_not_allowed_while_presenting(self):
        session = self.make_session()
        with self.assertRaises(InvalidTransitionError):
            session.step_back()

    @async_test
    async def test_stats_failure_keeps_counters(self):
        store = MagicMock()
        store.load.return_value = ScoreAccumulator(total_guesses=3)
        store.save.side_effect = StatsError("disk full")
        session = self.make_session(stats_store=store)
        await session.present()

        result = session.submit_rating_guess(1250)

        self.assertEqual(result.difference, 50)
        self.assertEqual(session.accumulator.total_guesses, 3)
        self.assertEqual(session.phase, RatingPhase.REVEALED)

    @async_test
    async def test_close_cancels_background_evaluation(self):
        self.gateway.block = asyncio.Event()
        session = self.make_session()
        await session.present()
        await settle()
        self.assertTrue(self.gateway.busy)

        session.close()
        self.gateway.block.set()
        await settle()

        self.assertEqual(self.gateway.cancel_calls, 1)
        self.assertIsNone(session.best_move_baseline)
        self.assertTrue(session.closed)
        with self.assertRaises(SessionClosedError):
            session.submit_rating_guess(1500)

    @async_test
    async def test_late_result_is_discarded(self):
        self.gateway.block = asyncio.Event()
        session = self.make_session()

        pending = asyncio.ensure_future(session._evaluate(PRE_BLUNDER))
        await settle()
        session.close()
        self.gateway.block.set()

        with self.assertRaises(SessionClosedError):
            await pending


class BlunderGuessSessionTests(SessionTestCase):
    """Test the find-the-blunder flow."""

    session_class = BlunderGuessSession

    async def presented(self, **kwargs):
        session = self.make_session(**kwargs)
        await session.present()
        await settle()
        return session

    @async_test
    async def test_presentation_shows_setup_move(self):
        session = self.make_session()
        steps = []

        await session.present(on_step=lambda index, record: steps.append(record.notation))

        self.assertEqual(steps, ["e5"])
        self.assertEqual(self.sleep.delays, [])
        self.assertEqual(session.phase, BlunderPhase.AWAITING_GUESS)
        self.assertEqual(session.cursor, 1)
        self.assertEqual(session.board_position, PRE_BLUNDER)

    @async_test
    async def test_correct_guess_solves(self):
        session = await self.presented()

        feedback = await session.submit_guess("g4")

        self.assertTrue(feedback.correct)
        self.assertEqual(feedback.attempts, 1)
        self.assertEqual(session.phase, BlunderPhase.SOLVED)
        self.assertEqual(session.cursor, 2)
        self.assertEqual(session.board_position, POST_BLUNDER)
        self.assertEqual(session.accumulator.puzzles_solved, 1)
        self.assertEqual(session.accumulator.blunder_attempts, 1)

    @async_test
    async def test_wrong_guess_with_evaluation(self):
        session = await self.presented()
        self.assertIsNotNone(session.blunder_evaluation)

        feedback = await session.submit_guess("g2g3")

        self.assertFalse(feedback.correct)
        self.assertEqual(feedback.message, AVOIDED_DISASTER_MESSAGE)
        self.assertEqual(feedback.evaluation.position, AFTER_G3)
        self.assertEqual(session.phase, BlunderPhase.AWAITING_GUESS)
        self.assertEqual(session.wrong_guesses, [feedback])

    @async_test
    async def test_wrong_guess_does_not_wait_for_evaluation(self):
        self.gateway.block = asyncio.Event()
        session = await self.presented()

        feedback = await session.submit_guess("g3")

        self.assertEqual(feedback.message, FALLBACK_MESSAGE)
        self.assertIsNone(feedback.evaluation)
        self.assertEqual(self.gateway.calls, [POST_BLUNDER])
        session.close()

    @async_test
    async def test_board_resets_after_wrong_guess(self):
        session = await self.presented()

        await session.submit_guess("g3")
        self.assertEqual(session.board_position, AFTER_G3)
        self.assertTrue(session.reset_pending)

        await settle()
        self.assertEqual(session.board_position, PRE_BLUNDER)
        self.assertEqual(self.sleep.delays, [self.config.wrong_guess_reset_delay])

    @async_test
    async def test_attempts_count_every_legal_guess(self):
        session = await self.presented()

        await session.submit_guess("a3")
        self.assertIsNone(await session.submit_guess("e1e3"))
        await session.submit_guess("h3")
        feedback = await session.submit_guess("g4")

        self.assertEqual(feedback.attempts, 3)
        self.assertEqual(session.accumulator.blunder_attempts, 3)

    @async_test
    async def test_hint_and_reveal(self):
        session = await self.presented()

        with self.assertRaises(InvalidTransitionError):
            session.reveal()
        self.assertEqual(session.hint(), "g2")

        blunder = session.reveal()

        self.assertEqual(blunder.notation, "g4")
        self.assertTrue(session.revealed)
        self.assertEqual(session.phase, BlunderPhase.SOLVED)
        self.assertEqual(session.accumulator.puzzles_solved, 0)
        with self.assertRaises(InvalidTransitionError):
            await session.submit_guess("g4")

    @async_test
    async def test_review_mode(self):
        session = await self.presented()

        self.assertEqual(session.navigable_range, (BEFORE_HISTORY, 1))
        session.go_first()
        self.assertTrue(session.in_review)
        self.assertEqual(session.board_position, chess.STARTING_FEN)
        with self.assertRaises(InvalidTransitionError):
            await session.submit_guess("g4")

        session.return_to_puzzle()
        self.assertFalse(session.in_review)
        self.assertEqual(session.board_position, PRE_BLUNDER)

    @async_test
    async def test_whole_timeline_navigable_after_solve(self):
        session = await self.presented()
        self.assertEqual(session.go_last(), 1)

        await session.submit_guess("g4")

        self.assertEqual(session.navigable_range, (BEFORE_HISTORY, 3))
        self.assertEqual(session.go_last(), 3)

    @async_test
    async def test_blunder_without_history(self):
        record = fools_mate_record(moves=["g2g4"], starting_position=PRE_BLUNDER)
        session = await self.presented(puzzle=reconstruct_puzzle(record))

        self.assertEqual(session.cursor, BEFORE_HISTORY)
        self.assertEqual(session.board_position, PRE_BLUNDER)
        feedback = await session.submit_guess("g4")
        self.assertTrue(feedback.correct)

    @async_test
    async def test_close_cancels_reset(self):
        session = await self.presented()
        await session.submit_guess("g3")

        session.close()
        await settle()

        self.assertEqual(session.board_position, AFTER_G3)
        with self.assertRaises(SessionClosedError):
            session.hint()


class SessionStatsTests(SessionTestCase):
    """Test statistics persistence through a real store."""

    session_class = BlunderGuessSession

    def setUp(self):
        super().setUp()
        self.temp_dir = tempfile.mkdtemp()
        self.store = StatsStore(Path(self.temp_dir) / "stats.db")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    @async_test
    async def test_solved_puzzle_is_saved(self):
        session = self.make_session(stats_store=self.store)
        await session.present()
        await session.submit_guess("a3")
        await session.submit_guess("g4")
        session.close()

        stored = self.store.load(self.config.stats_key)
        self.assertEqual(stored.puzzles_solved, 1)
        self.assertEqual(stored.blunder_attempts, 2)

    @async_test
    async def test_counters_carry_over_to_next_session(self):
        self.store.save(self.config.stats_key, ScoreAccumulator(puzzles_solved=4, blunder_attempts=9))
        session = self.make_session(stats_store=self.store)
        self.assertEqual(session.accumulator.puzzles_solved, 4)


if __name__ == "__main__":
    unittest.main()
