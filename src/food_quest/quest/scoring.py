"""Pure scoring rules for a finished sub-round session.

The pass threshold and the star bands are evaluated independently on the
same net score: a score of 6 fails but still earns one star, and 9 is the
first score that both passes and earns three stars.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

__all__ = [
    "PASS_THRESHOLD",
    "AnswerLike",
    "SessionScore",
    "evaluate_session",
    "result_message",
    "star_tier",
    "verdict_label",
]

# A session passes when the net score is strictly greater than this.
PASS_THRESHOLD = 8


class AnswerLike(Protocol):
    is_correct: bool


@dataclass(frozen=True)
class SessionScore:
    score: int
    passed: bool
    stars_earned: int


def star_tier(score: int) -> int:
    """Map a net score onto the 0-3 reward star bands."""

    if score >= 9:
        return 3
    if score >= 7:
        return 2
    if score >= 5:
        return 1
    return 0


def evaluate_session(
    answers: Iterable[AnswerLike], hints_used: int
) -> SessionScore:
    """Score a session: one point per correct answer, minus one per hint."""

    if hints_used < 0:
        raise ValueError("hints_used must be >= 0")
    correct = sum(1 for answer in answers if answer.is_correct)
    score = correct - hints_used
    return SessionScore(
        score=score,
        passed=score > PASS_THRESHOLD,
        stars_earned=star_tier(score),
    )


def result_message(score: int) -> str:
    if score >= 9:
        return "Wonderful!"
    if score >= 7:
        return "Good Job!"
    if score >= 5:
        return "Try Hard!"
    return "Poor... Keep Practicing!"


def verdict_label(passed: bool) -> str:
    return "PASSED" if passed else "FAILED"
