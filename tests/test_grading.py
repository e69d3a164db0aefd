"""
Unit tests for guess grading.

Evaluation samples are built the way the gateway returns them: scored for
the side to move in the position reached after the graded move.
"""

import unittest

from blunder_trainer.core.grading import (
    AVOIDED_DISASTER_MESSAGE,
    MISTAKE_BANDS,
    MISTAKE_FALLTHROUGH,
    STILL_LOSING_MESSAGE,
    centipawn_loss,
    describe_mistake,
    format_evaluation,
    grade_move_quality,
    grade_rating_guess,
    points_for_loss,
)
from blunder_trainer.core.models import EvaluationSample


def after_move(mover_score: int, mate: int = None) -> EvaluationSample:
    """Sample whose mover-perspective score is ``mover_score``."""
    return EvaluationSample(score=-mover_score, mate_distance=None if mate is None else -mate)


class RatingGuessTests(unittest.TestCase):
    """Test rating guess grading."""

    def test_exact_guess(self):
        result = grade_rating_guess(1500, 1500, 0, 0)
        self.assertEqual(result.difference, 0)
        self.assertEqual(result.new_streak, 1)
        self.assertEqual(result.new_best, 1)
        self.assertEqual(result.verdict, "near-exact")
        self.assertEqual(result.severity, "success")

    def test_way_off_breaks_streak(self):
        result = grade_rating_guess(1900, 1200, 2, 5)
        self.assertEqual(result.difference, 700)
        self.assertEqual(result.new_streak, 0)
        self.assertEqual(result.new_best, 5)
        self.assertEqual(result.verdict, "way off")
        self.assertEqual(result.severity, "error")
        self.assertFalse(result.keeps_streak)

    def test_band_boundaries(self):
        expected = [
            (50, "near-exact"), (51, "excellent"), (100, "excellent"),
            (200, "very close"), (201, "not bad"), (300, "not bad"),
            (500, "could be closer"), (501, "way off"),
        ]
        for difference, verdict in expected:
            with self.subTest(difference=difference):
                self.assertEqual(grade_rating_guess(1500 + difference, 1500, 0, 0).verdict, verdict)

    def test_streak_threshold(self):
        self.assertEqual(grade_rating_guess(1700, 1500, 3, 3).new_streak, 4)
        self.assertEqual(grade_rating_guess(1701, 1500, 3, 3).new_streak, 0)

    def test_best_streak_grows(self):
        result = grade_rating_guess(1450, 1500, 4, 4)
        self.assertEqual(result.new_streak, 5)
        self.assertEqual(result.new_best, 5)

    def test_difference_is_symmetric(self):
        self.assertEqual(grade_rating_guess(1300, 1500, 0, 0).difference, 200)


class MoveQualityTests(unittest.TestCase):
    """Test free-play move grading."""

    def test_known_best_move_scores_full(self):
        bad = after_move(-900)
        best = after_move(300)
        self.assertEqual(grade_move_quality(bad, best, "g1f3", "g1f3"), 100)

    def test_loss_bands(self):
        best = after_move(30)
        self.assertEqual(grade_move_quality(after_move(30), best, "a2a3", "b1c3"), 100)
        self.assertEqual(grade_move_quality(after_move(10), best, "a2a3", "b1c3"), 90)
        self.assertEqual(grade_move_quality(after_move(-20), best, "a2a3", "b1c3"), 75)
        self.assertEqual(grade_move_quality(after_move(-70), best, "a2a3", "b1c3"), 60)
        self.assertEqual(grade_move_quality(after_move(-170), best, "a2a3", "b1c3"), 40)
        self.assertEqual(grade_move_quality(after_move(-370), best, "a2a3", "b1c3"), 20)
        self.assertEqual(grade_move_quality(after_move(-371), best, "a2a3", "b1c3"), 0)

    def test_raw_samples_are_flipped(self):
        """Gateway samples score the opponent; a lower raw score is a better move."""
        user = EvaluationSample(score=20)
        best = EvaluationSample(score=-30)
        self.assertEqual(centipawn_loss(user, best), 50)
        self.assertEqual(grade_move_quality(user, best, "a2a3", "b1c3"), 75)

    def test_better_than_best_scores_full(self):
        self.assertEqual(grade_move_quality(after_move(80), after_move(30), "a2a3", "b1c3"), 100)

    def test_points_never_increase_with_loss(self):
        previous = 100
        for loss in range(-50, 600, 5):
            points = points_for_loss(loss)
            self.assertLessEqual(points, previous)
            self.assertGreaterEqual(points, 0)
            previous = points


class DescribeMistakeTests(unittest.TestCase):
    """Test find-the-blunder feedback."""

    def test_user_move_also_loses(self):
        message = describe_mistake(after_move(-9800, mate=-2), after_move(-9900, mate=-1))
        self.assertEqual(message, STILL_LOSING_MESSAGE)

    def test_user_avoids_forced_mate(self):
        message = describe_mistake(after_move(-40), after_move(-9900, mate=-1))
        self.assertEqual(message, AVOIDED_DISASTER_MESSAGE)

    def test_diff_bands(self):
        blunder = after_move(-100)
        cases = [
            (250, MISTAKE_BANDS[0][1]),
            (200, MISTAKE_BANDS[1][1]),
            (100, MISTAKE_BANDS[1][1]),
            (0, MISTAKE_BANDS[2][1]),
            (-100, MISTAKE_BANDS[3][1]),
            (-300, MISTAKE_FALLTHROUGH),
        ]
        for diff, expected in cases:
            with self.subTest(diff=diff):
                self.assertEqual(describe_mistake(after_move(-100 + diff), blunder), expected)

    def test_winning_mate_is_not_a_loss(self):
        """A guess that delivers mate is compared by score, not treated as losing."""
        message = describe_mistake(after_move(9900, mate=1), after_move(-100))
        self.assertEqual(message, MISTAKE_BANDS[0][1])


class FormatEvaluationTests(unittest.TestCase):
    """Test evaluation display."""

    def test_centipawns(self):
        self.assertEqual(format_evaluation(EvaluationSample(score=150)), "+1.5")
        self.assertEqual(format_evaluation(EvaluationSample(score=-30)), "-0.3")

    def test_mate(self):
        self.assertEqual(format_evaluation(EvaluationSample(score=9700, mate_distance=3)), "M3")


if __name__ == "__main__":
    unittest.main()
