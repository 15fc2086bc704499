"""Pure transitions over :class:`~food_quest.quest.models.QuestProgress`.

Every transition goes through :func:`dispatch`, which takes a snapshot and a
tagged request and returns a :class:`Transition` holding a *new* snapshot.
The input tree is never mutated, so observers holding the previous snapshot
never see a half-applied cascade.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence, Union

from .models import (
    MAX_STARS,
    Position,
    Question,
    QuestProgress,
    Rewards,
    build_initial_progress,
)

__all__ = [
    "CompleteSubRound",
    "QuestionSource",
    "Rejection",
    "RejectionReason",
    "Reset",
    "RewardGrant",
    "Transition",
    "complete_sub_round",
    "current_frontier",
    "dispatch",
]


class QuestionSource(Protocol):
    def questions_for_sub_round(
        self, round_index: int, sub_round_index: int
    ) -> Sequence[Question]: ...


class RejectionReason(str, Enum):
    LOCKED = "locked"
    SESSION_ACTIVE = "session_active"


@dataclass(frozen=True)
class Rejection:
    """Recoverable refusal surfaced to the UI instead of an exception."""

    reason: RejectionReason
    position: Position
    message: str


@dataclass(frozen=True)
class RewardGrant:
    """Reward emitted when a round or a level completes."""

    kind: str
    node_id: str
    stars: int
    badges: frozenset[str]
    prizes: frozenset[str]

    @classmethod
    def from_rewards(
        cls, kind: str, node_id: str, rewards: Rewards
    ) -> "RewardGrant":
        return cls(kind, node_id, rewards.stars, rewards.badges, rewards.prizes)


@dataclass(frozen=True)
class CompleteSubRound:
    position: Position
    stars_earned: int


@dataclass(frozen=True)
class Reset:
    question_source: Optional[QuestionSource] = None


TransitionRequest = Union[CompleteSubRound, Reset]


@dataclass(frozen=True)
class Transition:
    progress: QuestProgress
    grants: tuple[RewardGrant, ...] = ()
    rejection: Optional[Rejection] = None
    changed: bool = False

    @property
    def rejected(self) -> bool:
        return self.rejection is not None


def dispatch(
    progress: QuestProgress, request: TransitionRequest
) -> Transition:
    """Apply one tagged request and return the resulting transition."""

    if isinstance(request, CompleteSubRound):
        return _complete(progress, request.position, request.stars_earned)
    if isinstance(request, Reset):
        return Transition(
            progress=build_initial_progress(request.question_source),
            changed=True,
        )
    raise TypeError(f"Unsupported transition request: {request!r}")


def complete_sub_round(
    progress: QuestProgress,
    level_index: int,
    round_index: int,
    sub_round_index: int,
    stars_earned: int,
) -> QuestProgress:
    """Return the tree after completing one sub-round.

    A locked target leaves the tree untouched; use :func:`dispatch` to see
    the rejection itself.
    """

    request = CompleteSubRound(
        Position(level_index, round_index, sub_round_index), stars_earned
    )
    return dispatch(progress, request).progress


def current_frontier(progress: QuestProgress) -> Optional[Position]:
    """Return the first unlocked, incomplete sub-round in traversal order."""

    for li, level in enumerate(progress.levels):
        if level.is_locked:
            continue
        for ri, rnd in enumerate(level.rounds):
            if rnd.is_locked:
                continue
            for si, sub_round in enumerate(rnd.sub_rounds):
                if not sub_round.is_locked and not sub_round.is_completed:
                    return Position(li, ri, si)
    return None


def _complete(
    progress: QuestProgress, position: Position, stars_earned: int
) -> Transition:
    # Raises InvalidIndexError before anything else is inspected.
    progress.sub_round(position)
    if not 0 <= stars_earned <= MAX_STARS:
        raise ValueError(
            f"stars_earned must be within 0..{MAX_STARS}, got {stars_earned}"
        )
    if not progress.is_playable(position):
        return Transition(
            progress=progress,
            rejection=Rejection(
                RejectionReason.LOCKED,
                position,
                f"Sub-round {position} is locked.",
            ),
        )

    updated = progress.copy()
    grants: list[RewardGrant] = []
    li, ri, si = (
        position.level_index,
        position.round_index,
        position.sub_round_index,
    )
    level = updated.levels[li]
    rnd = level.rounds[ri]
    sub_round = rnd.sub_rounds[si]

    sub_round.is_completed = True
    sub_round.stars = max(sub_round.stars, stars_earned)
    if si + 1 < len(rnd.sub_rounds):
        rnd.sub_rounds[si + 1].is_locked = False

    if all(sr.is_completed for sr in rnd.sub_rounds):
        rnd.total_stars = sum(sr.stars for sr in rnd.sub_rounds)
        if not rnd.is_completed:
            rnd.is_completed = True
            grants.append(_grant(updated, "round", rnd.id, rnd.rewards))
            if ri + 1 < len(level.rounds):
                following = level.rounds[ri + 1]
                following.is_locked = False
                following.sub_rounds[0].is_locked = False

    if all(r.is_completed for r in level.rounds):
        level.total_stars = sum(r.total_stars for r in level.rounds)
        if not level.is_completed:
            level.is_completed = True
            grants.append(
                _grant(updated, "level", level.id, level.total_rewards)
            )
            if li + 1 < len(updated.levels):
                following_level = updated.levels[li + 1]
                following_level.is_locked = False
                following_level.rounds[0].is_locked = False
                following_level.rounds[0].sub_rounds[0].is_locked = False

    if updated == progress:
        return Transition(progress=progress)
    return Transition(progress=updated, grants=tuple(grants), changed=True)


def _grant(
    progress: QuestProgress, kind: str, node_id: str, rewards: Rewards
) -> RewardGrant:
    progress.total_stars += rewards.stars
    progress.total_badges.extend(sorted(rewards.badges))
    progress.total_prizes.extend(sorted(rewards.prizes))
    return RewardGrant.from_rewards(kind, node_id, rewards)
