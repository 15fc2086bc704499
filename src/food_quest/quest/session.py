"""Session controller for one sub-round attempt.

The controller walks a fixed question list through
``PRESENTING -> (HINT_SHOWN) -> ANSWERED -> PRESENTING | COMPLETE`` and
spends an in-session currency on hints and reveals. That currency is
unrelated to the reward stars produced by
:func:`~food_quest.quest.scoring.evaluate_session`.

Advancing after an answer goes through an injected scheduler. Each
scheduled callback carries the generation it was created in, so a callback
that outlives an abandoned or restarted session does nothing. The
controller never touches :class:`~food_quest.quest.models.QuestProgress`;
the host records the published :class:`SessionResult` with the store.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from .manager import Rejection, RejectionReason
from .models import Position, QuestError, Question, QuestProgress
from .scheduler import Scheduler, TimerHandle
from .scoring import evaluate_session

__all__ = [
    "AnswerRecord",
    "SessionController",
    "SessionPhase",
    "SessionProgress",
    "SessionResult",
    "SessionSettings",
    "reading_delay",
]

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    HINT_SHOWN = "hint_shown"
    ANSWERED = "answered"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


_OPEN_PHASES = (SessionPhase.PRESENTING, SessionPhase.HINT_SHOWN)
_LIVE_PHASES = _OPEN_PHASES + (SessionPhase.ANSWERED,)


@dataclass(frozen=True)
class SessionSettings:
    """Economy and pacing knobs; delays are in seconds."""

    hearts: int = 5
    currency: int = 100
    hint_cost: int = 10
    reveal_cost: int = 20
    min_delay: float = 2.0
    max_delay: float = 4.5
    per_char_delay: float = 0.05


def reading_delay(text: str, settings: SessionSettings) -> float:
    """Read-aloud pause before advancing, bounded by the settings."""

    raw = len(text) * settings.per_char_delay
    return min(settings.max_delay, max(settings.min_delay, raw))


@dataclass(frozen=True)
class AnswerRecord:
    question_id: str
    selected_index: int
    is_correct: bool
    revealed: bool = False
    hinted: bool = False


@dataclass(frozen=True)
class SessionProgress:
    current: int
    total: int

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return self.current / self.total * 100


@dataclass(frozen=True)
class SessionResult:
    """Published when the last question has been answered."""

    position: Position
    score: int
    total_questions: int
    stars_earned: int
    passed: bool
    hearts_remaining: int
    hints_used: int
    answers: tuple[AnswerRecord, ...]


CompletionCallback = Callable[[SessionResult], None]


class SessionController:
    """Drive one live sub-round session at a time."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        settings: Optional[SessionSettings] = None,
        on_complete: Optional[CompletionCallback] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._scheduler = scheduler
        self._settings = settings or SessionSettings()
        self._on_complete = on_complete
        self._rng = rng or random.Random()
        self._generation = 0
        self._pending: Optional[TimerHandle] = None
        self._reset_state()
        self.phase = SessionPhase.IDLE

    def _reset_state(self) -> None:
        self.position: Optional[Position] = None
        self.questions: tuple[Question, ...] = ()
        self.question_index = 0
        self.hearts = self._settings.hearts
        self.currency = self._settings.currency
        self.hints_used = 0
        self.hint_text: Optional[str] = None
        self.selected_index: Optional[int] = None
        self.answers: list[AnswerRecord] = []
        self.result: Optional[SessionResult] = None

    @property
    def settings(self) -> SessionSettings:
        return self._settings

    @property
    def is_active(self) -> bool:
        return self.phase in _LIVE_PHASES

    @property
    def current_question(self) -> Optional[Question]:
        if not self.is_active:
            return None
        return self.questions[self.question_index]

    @property
    def is_last_question(self) -> bool:
        return self.question_index == len(self.questions) - 1

    @property
    def can_use_hint(self) -> bool:
        return (
            self.phase is SessionPhase.PRESENTING
            and self.currency >= self._settings.hint_cost
        )

    @property
    def can_reveal(self) -> bool:
        return (
            self.phase in _OPEN_PHASES
            and self.currency >= self._settings.reveal_cost
        )

    def progress(self) -> SessionProgress:
        return SessionProgress(self.question_index + 1, len(self.questions))

    def start_session(
        self,
        progress: QuestProgress,
        level_index: int,
        round_index: int,
        sub_round_index: int,
        *,
        questions: Optional[Sequence[Question]] = None,
    ) -> Optional[Rejection]:
        """Begin a session; return a rejection instead of starting.

        Out-of-range indices raise InvalidIndexError.
        """
        position = Position(level_index, round_index, sub_round_index)
        sub_round = progress.sub_round(position)
        if self.is_active:
            return Rejection(
                RejectionReason.SESSION_ACTIVE,
                position,
                f"A session for {self.position} is already in progress.",
            )
        if not progress.is_playable(position):
            logger.info(
                "session rejected: locked",
                extra={"position": str(position)},
            )
            return Rejection(
                RejectionReason.LOCKED,
                position,
                f"{sub_round.name} is locked. Finish the earlier ones first!",
            )
        pool = tuple(questions) if questions is not None else sub_round.questions
        if not pool:
            raise QuestError(f"No questions available for {position}.")

        self._generation += 1
        self._reset_state()
        self.position = position
        self.questions = pool
        self.phase = SessionPhase.PRESENTING
        logger.debug(
            "session started",
            extra={"position": str(position), "questions": len(pool)},
        )
        return None

    def submit_answer(self, index: int) -> Optional[AnswerRecord]:
        """Answer the current question; ``None`` if it was already answered."""

        if self.phase not in _OPEN_PHASES:
            return None
        question = self.questions[self.question_index]
        return self._record(
            AnswerRecord(
                question_id=question.id,
                selected_index=index,
                is_correct=index == question.correct_index,
                hinted=self.hint_text is not None,
            )
        )

    def use_hint(self) -> Optional[str]:
        """Spend currency on a clue; one per question, before answering."""

        if not self.can_use_hint:
            return None
        question = self.questions[self.question_index]
        self.currency -= self._settings.hint_cost
        self.hints_used += 1
        self.hint_text = self._rng.choice(_hint_options(question))
        self.phase = SessionPhase.HINT_SHOWN
        return self.hint_text

    def reveal_answer(self) -> Optional[int]:
        """Spend currency to show the answer; it never counts as correct."""

        if not self.can_reveal:
            return None
        question = self.questions[self.question_index]
        self.currency -= self._settings.reveal_cost
        self._record(
            AnswerRecord(
                question_id=question.id,
                selected_index=question.correct_index,
                is_correct=False,
                revealed=True,
                hinted=self.hint_text is not None,
            )
        )
        return question.correct_index

    def abandon(self) -> bool:
        """Drop the live session and its pending callback, if any."""

        if not self.is_active:
            return False
        self._cancel_pending()
        self._generation += 1
        logger.info(
            "session abandoned",
            extra={
                "position": str(self.position),
                "question_index": self.question_index,
            },
        )
        self._reset_state()
        self.phase = SessionPhase.ABANDONED
        return True

    def _record(self, answer: AnswerRecord) -> AnswerRecord:
        self.answers.append(answer)
        self.selected_index = answer.selected_index
        self.phase = SessionPhase.ANSWERED
        question = self.questions[self.question_index]
        delay = reading_delay(question.prompt, self._settings)
        generation = self._generation
        self._pending = self._scheduler.schedule(
            delay, lambda: self._advance(generation)
        )
        return answer

    def _advance(self, generation: int) -> None:
        if generation != self._generation:
            return
        if self.phase is not SessionPhase.ANSWERED:
            return
        self._pending = None
        if self.is_last_question:
            self._finish()
            return
        self.question_index += 1
        self.hint_text = None
        self.selected_index = None
        self.phase = SessionPhase.PRESENTING

    def _finish(self) -> None:
        if self.position is None:
            raise QuestError("No live session to finish.")
        score = evaluate_session(self.answers, self.hints_used)
        self.result = SessionResult(
            position=self.position,
            score=score.score,
            total_questions=len(self.questions),
            stars_earned=score.stars_earned,
            passed=score.passed,
            hearts_remaining=self.hearts,
            hints_used=self.hints_used,
            answers=tuple(self.answers),
        )
        self.phase = SessionPhase.COMPLETE
        logger.info(
            "session complete",
            extra={
                "position": str(self.position),
                "score": score.score,
                "stars": score.stars_earned,
                "passed": score.passed,
            },
        )
        if self._on_complete is not None:
            self._on_complete(self.result)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._scheduler.cancel(self._pending)
            self._pending = None


def _hint_options(question: Question) -> list[str]:
    answer = question.correct_answer
    options = [
        f'The answer starts with "{answer[0]}"',
        f"The answer is {len(answer)} characters long",
        f"This one is about {question.topic.lower()}",
    ]
    if len(answer) > 2:
        options.append(f'The answer ends with "{answer[-1]}"')
    return options
