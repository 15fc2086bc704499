from __future__ import annotations

from dataclasses import dataclass

import pytest

from food_quest.quest.scoring import (
    evaluate_session,
    result_message,
    star_tier,
    verdict_label,
)


@dataclass
class _Answer:
    is_correct: bool


def _answers(correct: int, total: int = 10) -> list:
    return [_Answer(i < correct) for i in range(total)]


@pytest.mark.parametrize(
    ("correct", "hints", "score", "stars", "passed"),
    [
        (4, 0, 4, 0, False),
        (5, 0, 5, 1, False),
        (6, 0, 6, 1, False),
        (7, 0, 7, 2, False),
        (8, 0, 8, 2, False),
        (9, 0, 9, 3, True),
        (10, 0, 10, 3, True),
        (0, 2, -2, 0, False),
        (10, 2, 8, 2, False),
        (10, 1, 9, 3, True),
    ],
)
def test_score_boundaries(correct, hints, score, stars, passed):
    result = evaluate_session(_answers(correct), hints)

    assert result.score == score
    assert result.stars_earned == stars
    assert result.passed is passed


def test_failing_score_can_still_earn_stars():
    result = evaluate_session(_answers(6), 0)

    assert not result.passed
    assert result.stars_earned == 1


def test_negative_hints_rejected():
    with pytest.raises(ValueError):
        evaluate_session(_answers(5), -1)


def test_empty_answer_list_scores_zero():
    result = evaluate_session([], 0)

    assert (result.score, result.stars_earned, result.passed) == (0, 0, False)


@pytest.mark.parametrize(
    ("score", "expected"),
    [(12, 3), (9, 3), (8, 2), (7, 2), (6, 1), (5, 1), (4, 0), (-3, 0)],
)
def test_star_tier(score, expected):
    assert star_tier(score) == expected


@pytest.mark.parametrize(
    ("score", "message"),
    [
        (10, "Wonderful!"),
        (7, "Good Job!"),
        (5, "Try Hard!"),
        (4, "Poor... Keep Practicing!"),
    ],
)
def test_result_message(score, message):
    assert result_message(score) == message


def test_verdict_label():
    assert verdict_label(True) == "PASSED"
    assert verdict_label(False) == "FAILED"
