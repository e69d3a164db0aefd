"""
Guess grading for the Blunder Trainer.

Pure functions that turn a player's guess and the ground truth into scores
and feedback messages. Engine samples are passed in exactly as the evaluation
gateway returned them; perspective changes happen here through
``EvaluationSample.to_mover_perspective``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import EvaluationSample

# A guess within this many points keeps the streak alive
STREAK_THRESHOLD = 200

# (max difference, verdict, message, severity), first match wins
RATING_BANDS = [
    (50, "near-exact", "Near-exact! You read that player perfectly.", "success"),
    (100, "excellent", "Excellent guess!", "success"),
    (200, "very close", "Very close!", "good"),
    (300, "not bad", "Not bad.", "good"),
    (500, "could be closer", "Could be closer.", "warning"),
]
RATING_MISS = ("way off", "Way off!", "error")

# (max centipawn loss, points), first match wins
MOVE_QUALITY_BANDS = [
    (0, 100),
    (25, 90),
    (50, 75),
    (100, 60),
    (200, 40),
    (400, 20),
]

FALLBACK_MESSAGE = "That's not the blunder. Try again!"

STILL_LOSING_MESSAGE = "That's also losing, but not the move played."
AVOIDED_DISASTER_MESSAGE = "Good thinking! That move avoids the disaster."

# (exclusive lower bound on diff, message), first match wins
MISTAKE_BANDS = [
    (200, "That's actually a decent move! The game blunder was much worse."),
    (50, "That's slightly better than what was played."),
    (-50, "That's about as bad as the game blunder, but not the one played."),
    (-200, "That's also a mistake, but the game blunder was worse."),
]
MISTAKE_FALLTHROUGH = "That's also a blunder, but not the one from the game."


@dataclass(frozen=True)
class RatingGuessResult:
    """Verdict on one rating guess."""

    guess: int
    actual: int
    difference: int
    new_streak: int
    new_best: int
    verdict: str
    message: str
    severity: str

    @property
    def keeps_streak(self) -> bool:
        return self.difference <= STREAK_THRESHOLD


def grade_rating_guess(guess: int, actual: int, prior_streak: int, prior_best: int) -> RatingGuessResult:
    """
    Grade a guess of the blunderer's rating.

    Args:
        guess: Rating the player guessed
        actual: Rating of the player who blundered
        prior_streak: Streak before this guess
        prior_best: Best streak before this guess

    Returns:
        Difference, updated streaks and the verdict message
    """
    difference = abs(guess - actual)
    new_streak = prior_streak + 1 if difference <= STREAK_THRESHOLD else 0
    new_best = max(prior_best, new_streak)

    verdict, message, severity = RATING_MISS
    for threshold, band_verdict, band_message, band_severity in RATING_BANDS:
        if difference <= threshold:
            verdict, message, severity = band_verdict, band_message, band_severity
            break

    return RatingGuessResult(
        guess=guess,
        actual=actual,
        difference=difference,
        new_streak=new_streak,
        new_best=new_best,
        verdict=verdict,
        message=message,
        severity=severity,
    )


def centipawn_loss(user_eval: EvaluationSample, best_eval: EvaluationSample) -> int:
    """
    Centipawns the player gave up compared to the best move.

    Both samples must score the positions reached after the respective moves.
    """
    user_score = user_eval.to_mover_perspective().score
    best_score = best_eval.to_mover_perspective().score
    return best_score - user_score


def points_for_loss(loss: int) -> int:
    """Map a centipawn loss to move-quality points."""
    for threshold, points in MOVE_QUALITY_BANDS:
        if loss <= threshold:
            return points
    return 0


def grade_move_quality(
    user_eval: EvaluationSample,
    best_eval: EvaluationSample,
    user_move: str,
    known_best_move: Optional[str],
) -> int:
    """
    Score a free-play move from 0 to 100.

    Playing the engine's best move always earns full points. Otherwise the
    centipawn loss against the best move decides. Both samples must come from
    searches of equal depth.
    """
    if known_best_move and user_move == known_best_move:
        return 100
    return points_for_loss(centipawn_loss(user_eval, best_eval))


def describe_mistake(user_eval: EvaluationSample, blunder_eval: EvaluationSample) -> str:
    """
    Explain how a wrong guess compares to the historical blunder.

    Args:
        user_eval: Sample of the position after the player's move
        blunder_eval: Sample of the position after the historical blunder
    """
    user = user_eval.to_mover_perspective()
    blunder = blunder_eval.to_mover_perspective()

    if user.is_forced_loss:
        return STILL_LOSING_MESSAGE
    if blunder.is_forced_loss:
        return AVOIDED_DISASTER_MESSAGE

    diff = user.score - blunder.score
    for bound, message in MISTAKE_BANDS:
        if diff > bound:
            return message
    return MISTAKE_FALLTHROUGH


def format_evaluation(sample: EvaluationSample) -> str:
    """Render a sample as "+1.5", "-0.3" or "M3"."""
    if sample.mate_distance is not None:
        return f"M{sample.mate_distance}"
    return f"{sample.score / 100:+.1f}"
