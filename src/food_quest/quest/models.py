"""Quest progression tree: levels, rounds, sub-rounds and their invariants.

The whole tree is owned by a single :class:`QuestProgress` root. Nodes are
plain mutable dataclasses so the manager can apply a transition to a fresh
copy (:meth:`QuestProgress.copy`) and hand back a new snapshot; questions
and reward bundles are immutable and shared between snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, MutableMapping, Sequence

__all__ = [
    "DEFAULT_TOPIC",
    "LEVEL_COUNT",
    "MAX_STARS",
    "QUESTIONS_PER_SUB_ROUND",
    "ROUNDS_PER_LEVEL",
    "SUB_ROUNDS_PER_ROUND",
    "Difficulty",
    "InvalidIndexError",
    "Level",
    "Position",
    "ProgressFormatError",
    "QuestError",
    "QuestProgress",
    "Question",
    "Rewards",
    "Round",
    "SubRound",
    "build_initial_progress",
    "check_invariants",
]

LEVEL_COUNT = 3
ROUNDS_PER_LEVEL = 10
SUB_ROUNDS_PER_ROUND = 5
QUESTIONS_PER_SUB_ROUND = 10
MAX_STARS = 3
DEFAULT_TOPIC = "General Knowledge"


class QuestError(RuntimeError):
    """Base error for the quest engine."""


class InvalidIndexError(QuestError, IndexError):
    """Raised when a level/round/sub-round index is out of range."""


class ProgressFormatError(QuestError, ValueError):
    """Raised when serialized progress cannot be decoded."""


class Difficulty(str, Enum):
    EASY = "EASY"
    NORMAL = "NORMAL"
    HARD = "HARD"

    @property
    def label(self) -> str:
        return f"{self.value.capitalize()} Level"


@dataclass(frozen=True)
class Question:
    """Immutable multiple-choice question."""

    id: str
    prompt: str
    options: tuple[str, ...]
    correct_index: int
    topic: str = DEFAULT_TOPIC
    explanation: str | None = None

    @property
    def correct_answer(self) -> str:
        return self.options[self.correct_index]

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "id": self.id,
            "prompt": self.prompt,
            "options": list(self.options),
            "correct_index": self.correct_index,
            "topic": self.topic,
        }
        if self.explanation:
            payload["explanation"] = self.explanation
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Question":
        return cls(
            id=str(payload["id"]),
            prompt=str(payload["prompt"]),
            options=tuple(str(option) for option in payload["options"]),
            correct_index=int(payload["correct_index"]),
            topic=str(payload.get("topic") or DEFAULT_TOPIC),
            explanation=payload.get("explanation") or None,
        )


@dataclass(frozen=True)
class Rewards:
    """Reward bundle granted when a round or level completes."""

    stars: int = 0
    badges: frozenset[str] = frozenset()
    prizes: frozenset[str] = frozenset()

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "stars": self.stars,
            "badges": sorted(self.badges),
            "prizes": sorted(self.prizes),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Rewards":
        payload = _require_mapping(payload, "rewards")
        return cls(
            stars=int(payload.get("stars", 0)),
            badges=frozenset(str(b) for b in payload.get("badges", ())),
            prizes=frozenset(str(p) for p in payload.get("prizes", ())),
        )


@dataclass(frozen=True, order=True)
class Position:
    """Stable address of a sub-round inside the tree."""

    level_index: int
    round_index: int
    sub_round_index: int

    def __str__(self) -> str:
        return "L{0}/R{1}/S{2}".format(
            self.level_index + 1,
            self.round_index + 1,
            self.sub_round_index + 1,
        )


@dataclass
class SubRound:
    id: str
    name: str
    questions: tuple[Question, ...]
    is_completed: bool = False
    is_locked: bool = True
    stars: int = 0
    max_stars: int = MAX_STARS

    def copy(self) -> "SubRound":
        return replace(self)


@dataclass
class Round:
    id: str
    name: str
    sub_rounds: list[SubRound]
    rewards: Rewards
    is_completed: bool = False
    is_locked: bool = True
    total_stars: int = 0

    def copy(self) -> "Round":
        return replace(self, sub_rounds=[sr.copy() for sr in self.sub_rounds])


@dataclass
class Level:
    id: str
    name: str
    difficulty: Difficulty
    rounds: list[Round]
    total_rewards: Rewards
    is_completed: bool = False
    is_locked: bool = True
    total_stars: int = 0

    def copy(self) -> "Level":
        return replace(self, rounds=[rnd.copy() for rnd in self.rounds])


@dataclass
class QuestProgress:
    """Aggregate root; the only entity that is persisted and restored."""

    levels: list[Level]
    total_stars: int = 0
    total_badges: list[str] = field(default_factory=list)
    total_prizes: list[str] = field(default_factory=list)

    def copy(self) -> "QuestProgress":
        """Return an isolated copy sharing only immutable leaves."""

        return QuestProgress(
            levels=[level.copy() for level in self.levels],
            total_stars=self.total_stars,
            total_badges=list(self.total_badges),
            total_prizes=list(self.total_prizes),
        )

    def level(self, level_index: int) -> Level:
        return self.levels[_check_index(level_index, self.levels, "level")]

    def round(self, level_index: int, round_index: int) -> Round:
        rounds = self.level(level_index).rounds
        return rounds[_check_index(round_index, rounds, "round")]

    def sub_round(self, position: Position) -> SubRound:
        sub_rounds = self.round(
            position.level_index, position.round_index
        ).sub_rounds
        index = _check_index(position.sub_round_index, sub_rounds, "sub-round")
        return sub_rounds[index]

    def is_playable(self, position: Position) -> bool:
        """Whether the addressed sub-round and its parents are unlocked."""

        level = self.level(position.level_index)
        rnd = self.round(position.level_index, position.round_index)
        return not (
            level.is_locked
            or rnd.is_locked
            or self.sub_round(position).is_locked
        )

    def iter_positions(self) -> Iterator[tuple[Position, SubRound]]:
        """Yield every sub-round in traversal order."""

        for li, level in enumerate(self.levels):
            for ri, rnd in enumerate(level.rounds):
                for si, sub_round in enumerate(rnd.sub_rounds):
                    yield Position(li, ri, si), sub_round

    @property
    def is_completed(self) -> bool:
        return all(level.is_completed for level in self.levels)

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "levels": [_level_to_dict(level) for level in self.levels],
            "total_stars": self.total_stars,
            "total_badges": list(self.total_badges),
            "total_prizes": list(self.total_prizes),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuestProgress":
        try:
            payload = _require_mapping(payload, "progress")
            return cls(
                levels=[_level_from_dict(item) for item in payload["levels"]],
                total_stars=int(payload.get("total_stars", 0)),
                total_badges=[str(b) for b in payload.get("total_badges", ())],
                total_prizes=[str(p) for p in payload.get("total_prizes", ())],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ProgressFormatError(
                f"Malformed quest progress payload: {exc!r}"
            ) from exc


def _require_mapping(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ProgressFormatError(
            f"Expected a mapping for {label}, got {type(value).__name__}."
        )
    return value


def _check_index(index: int, items: Sequence[object], label: str) -> int:
    if not isinstance(index, int) or not 0 <= index < len(items):
        raise InvalidIndexError(
            f"{label} index {index!r} out of range (0..{len(items) - 1})"
        )
    return index


def round_rewards(round_index: int) -> Rewards:
    return Rewards(
        stars=50 + round_index * 10,
        badges=frozenset({f"round_{round_index + 1}_badge"}),
        prizes=frozenset({f"prize_{round_index + 1}"}),
    )


def level_rewards(level_index: int, difficulty: Difficulty) -> Rewards:
    return Rewards(
        stars=1000 + level_index * 500,
        badges=frozenset({f"level_{difficulty.value.lower()}_master"}),
        prizes=frozenset({f"level_{level_index + 1}_trophy"}),
    )


def build_initial_progress(
    question_source: Any = None,
) -> QuestProgress:
    """Build the fixed 3 x 10 x 5 tree with only the first node unlocked.

    ``question_source`` is anything exposing
    ``questions_for_sub_round(round_index, sub_round_index)``; when omitted
    sub-rounds are created without questions and sessions must be given
    questions explicitly.
    """

    levels: list[Level] = []
    for li, difficulty in enumerate(Difficulty):
        rounds: list[Round] = []
        for ri in range(ROUNDS_PER_LEVEL):
            sub_rounds = [
                SubRound(
                    id=f"level_{li}_round_{ri}_subround_{si}",
                    name=f"Sub-Round {si + 1}",
                    questions=_questions_for(question_source, ri, si),
                    is_locked=(li, ri, si) != (0, 0, 0),
                )
                for si in range(SUB_ROUNDS_PER_ROUND)
            ]
            rounds.append(
                Round(
                    id=f"level_{li}_round_{ri}",
                    name=f"Round {ri + 1}",
                    sub_rounds=sub_rounds,
                    rewards=round_rewards(ri),
                    is_locked=(li, ri) != (0, 0),
                )
            )
        levels.append(
            Level(
                id=f"level_{li}",
                name=difficulty.label,
                difficulty=difficulty,
                rounds=rounds,
                total_rewards=level_rewards(li, difficulty),
                is_locked=li != 0,
            )
        )
    return QuestProgress(levels=levels)


def _questions_for(
    source: Any, round_index: int, sub_round_index: int
) -> tuple[Question, ...]:
    if source is None:
        return ()
    return tuple(source.questions_for_sub_round(round_index, sub_round_index))


def check_invariants(progress: QuestProgress) -> list[str]:
    """Return a human-readable list of violated invariants (empty if none)."""

    problems: list[str] = []
    if len(progress.levels) != LEVEL_COUNT:
        problems.append(f"expected {LEVEL_COUNT} levels")
        return problems

    for level in progress.levels:
        if len(level.rounds) != ROUNDS_PER_LEVEL:
            problems.append(f"{level.id}: expected {ROUNDS_PER_LEVEL} rounds")
            continue
        for rnd in level.rounds:
            if len(rnd.sub_rounds) != SUB_ROUNDS_PER_ROUND:
                problems.append(
                    f"{rnd.id}: expected {SUB_ROUNDS_PER_ROUND} sub-rounds"
                )
                continue
            problems.extend(_check_round(rnd))
        problems.extend(_check_level(level))
    if problems:
        return problems

    frontier = [
        position
        for position, sub_round in progress.iter_positions()
        if not sub_round.is_locked and not sub_round.is_completed
    ]
    if len(frontier) > 1:
        problems.append(
            "multiple playable sub-rounds: "
            + ", ".join(str(position) for position in frontier)
        )
    if not frontier and not progress.is_completed:
        problems.append("no playable sub-round but quest is incomplete")
    return problems


def _check_round(rnd: Round) -> Iterable[str]:
    for sub_round in rnd.sub_rounds:
        if not 0 <= sub_round.stars <= sub_round.max_stars:
            yield f"{sub_round.id}: stars {sub_round.stars} out of range"
        if sub_round.is_completed and sub_round.is_locked:
            yield f"{sub_round.id}: completed but locked"
    all_done = all(sr.is_completed for sr in rnd.sub_rounds)
    if rnd.is_completed != all_done:
        yield f"{rnd.id}: completion disagrees with sub-rounds"
    if rnd.is_completed and rnd.total_stars != sum(
        sr.stars for sr in rnd.sub_rounds
    ):
        yield f"{rnd.id}: cached total_stars is stale"


def _check_level(level: Level) -> Iterable[str]:
    all_done = all(rnd.is_completed for rnd in level.rounds)
    if level.is_completed != all_done:
        yield f"{level.id}: completion disagrees with rounds"
    if level.is_completed and level.total_stars != sum(
        rnd.total_stars for rnd in level.rounds
    ):
        yield f"{level.id}: cached total_stars is stale"


def _level_to_dict(level: Level) -> MutableMapping[str, Any]:
    return {
        "id": level.id,
        "name": level.name,
        "difficulty": level.difficulty.value,
        "is_completed": level.is_completed,
        "is_locked": level.is_locked,
        "total_stars": level.total_stars,
        "total_rewards": level.total_rewards.to_dict(),
        "rounds": [
            {
                "id": rnd.id,
                "name": rnd.name,
                "is_completed": rnd.is_completed,
                "is_locked": rnd.is_locked,
                "total_stars": rnd.total_stars,
                "rewards": rnd.rewards.to_dict(),
                "sub_rounds": [
                    {
                        "id": sr.id,
                        "name": sr.name,
                        "is_completed": sr.is_completed,
                        "is_locked": sr.is_locked,
                        "stars": sr.stars,
                        "max_stars": sr.max_stars,
                        "questions": [q.to_dict() for q in sr.questions],
                    }
                    for sr in rnd.sub_rounds
                ],
            }
            for rnd in level.rounds
        ],
    }


def _level_from_dict(payload: Mapping[str, Any]) -> Level:
    payload = _require_mapping(payload, "level")
    round_payloads = [
        _require_mapping(rnd, "round") for rnd in payload["rounds"]
    ]
    rounds = [
        Round(
            id=str(rnd["id"]),
            name=str(rnd["name"]),
            sub_rounds=[
                SubRound(
                    id=str(sr["id"]),
                    name=str(sr["name"]),
                    questions=tuple(
                        Question.from_dict(q) for q in sr.get("questions", ())
                    ),
                    is_completed=bool(sr["is_completed"]),
                    is_locked=bool(sr["is_locked"]),
                    stars=int(sr["stars"]),
                    max_stars=int(sr.get("max_stars", MAX_STARS)),
                )
                for sr in (
                    _require_mapping(item, "sub-round")
                    for item in rnd["sub_rounds"]
                )
            ],
            rewards=Rewards.from_dict(rnd["rewards"]),
            is_completed=bool(rnd["is_completed"]),
            is_locked=bool(rnd["is_locked"]),
            total_stars=int(rnd["total_stars"]),
        )
        for rnd in round_payloads
    ]
    return Level(
        id=str(payload["id"]),
        name=str(payload["name"]),
        difficulty=Difficulty(payload["difficulty"]),
        rounds=rounds,
        total_rewards=Rewards.from_dict(payload["total_rewards"]),
        is_completed=bool(payload["is_completed"]),
        is_locked=bool(payload["is_locked"]),
        total_stars=int(payload["total_stars"]),
    )
