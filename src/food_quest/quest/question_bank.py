"""Static food-literacy question catalog and per-sub-round selection.

Records are validated when the bank is built so malformed questions never
reach a session. Selection is reproducible: pass ``seed`` to the bank or to
:meth:`QuestionBank.questions_for_sub_round`.
"""

from __future__ import annotations

import json
import random
from collections import defaultdict
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from .models import (
    DEFAULT_TOPIC,
    QUESTIONS_PER_SUB_ROUND,
    SUB_ROUNDS_PER_ROUND,
    QuestError,
    Question,
)

__all__ = [
    "STRATEGIES",
    "QuestionBank",
    "QuestionBankError",
    "load_default_bank",
    "parse_question",
]

STRATEGIES = ("slice", "balanced")
_DATA_PACKAGE = "food_quest.quest.data"
_DATA_FILE = "questions.json"


class QuestionBankError(QuestError, ValueError):
    """Raised when question data is malformed."""


def parse_question(record: Mapping[str, Any], *, index: int = 0) -> Question:
    """Validate one raw record and convert it into a :class:`Question`.

    Accepted shapes:
    - ``correct_index``: zero-based integer into ``options``
    - ``correct_answer``: option letter (``"A"`` is the first option)
    Raises QuestionBankError with actionable messages when invalid.
    """

    if not isinstance(record, Mapping):
        raise QuestionBankError(f"question #{index} must be a mapping")
    qid = str(record.get("id") or f"q{index}")
    prompt = str(record.get("prompt") or record.get("question") or "").strip()
    if not prompt:
        raise QuestionBankError(f"{qid}: prompt is required")

    options = record.get("options")
    if not isinstance(options, list) or len(options) < 2:
        raise QuestionBankError(f"{qid}: options must list at least 2 items")
    texts = [str(option).strip() for option in options]
    if not all(texts):
        raise QuestionBankError(f"{qid}: option text must be non-empty")

    correct_index = _correct_index(qid, record)
    if not 0 <= correct_index < len(texts):
        raise QuestionBankError(
            f"{qid}: correct index {correct_index} outside "
            f"0..{len(texts) - 1}"
        )

    explanation = record.get("explanation")
    return Question(
        id=qid,
        prompt=prompt,
        options=tuple(texts),
        correct_index=correct_index,
        topic=str(record.get("topic") or DEFAULT_TOPIC),
        explanation=str(explanation) if explanation else None,
    )


def _correct_index(qid: str, record: Mapping[str, Any]) -> int:
    if "correct_index" in record:
        value = record["correct_index"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise QuestionBankError(f"{qid}: correct_index must be an int")
        return value
    letter = str(record.get("correct_answer") or "").strip().upper()
    if len(letter) != 1 or not letter.isalpha():
        raise QuestionBankError(
            f"{qid}: provide correct_index or a correct_answer letter"
        )
    return ord(letter) - ord("A")


class QuestionBank:
    """Validated, topic-grouped question pool."""

    def __init__(
        self,
        questions: Sequence[Question],
        *,
        seed: Optional[int] = None,
        strategy: str = "slice",
        size: int = QUESTIONS_PER_SUB_ROUND,
    ) -> None:
        if not questions:
            raise QuestionBankError("question bank is empty")
        if strategy not in STRATEGIES:
            raise QuestionBankError(
                f"unknown strategy '{strategy}'; expected one of "
                + ", ".join(STRATEGIES)
            )
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise QuestionBankError("duplicate question ids detected")
        self._questions = list(questions)
        self._seed = seed
        self._rng = random.Random(seed)
        self._strategy = strategy
        self._size = size

    @classmethod
    def from_records(
        cls, records: Sequence[Mapping[str, Any]], **kwargs: Any
    ) -> "QuestionBank":
        parsed = [
            parse_question(record, index=idx)
            for idx, record in enumerate(records)
        ]
        return cls(parsed, **kwargs)

    @classmethod
    def from_path(cls, path: Path, **kwargs: Any) -> "QuestionBank":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise QuestionBankError(
                f"Failed to read question bank {path}: {exc}"
            ) from exc
        return cls.from_records(_records_from_payload(payload), **kwargs)

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)

    @property
    def strategy(self) -> str:
        return self._strategy

    def get(self, question_id: str) -> Question:
        for question in self._questions:
            if question.id == question_id:
                return question
        raise KeyError(question_id)

    def by_topic(self) -> Dict[str, List[Question]]:
        groups: Dict[str, List[Question]] = defaultdict(list)
        for question in self._questions:
            groups[question.topic].append(question)
        return dict(groups)

    def topics(self) -> List[str]:
        return sorted(self.by_topic())

    def questions_for_sub_round(
        self,
        round_index: int,
        sub_round_index: int,
        *,
        seed: Optional[int] = None,
    ) -> List[Question]:
        """Return the fixed-size pool for one sub-round.

        - slice: shuffle the whole bank, then take ``size`` consecutive
          questions starting at ``(round * 5 + sub) * size``, wrapping
        - balanced: round-robin across topics (sorted), each topic shuffled
        Deterministic when a seed is given here or to the bank.
        """
        rng = self._rng_for(seed)
        slot = round_index * SUB_ROUNDS_PER_ROUND + sub_round_index
        if self._strategy == "balanced":
            return self._balanced(rng, slot)

        shuffled = list(self._questions)
        rng.shuffle(shuffled)
        start = (slot * self._size) % len(shuffled)
        return [
            shuffled[(start + offset) % len(shuffled)]
            for offset in range(self._size)
        ]

    def _balanced(self, rng: random.Random, slot: int) -> List[Question]:
        groups = self.by_topic()
        topics = sorted(groups)
        for topic in topics:
            rng.shuffle(groups[topic])
        cursors = {topic: slot for topic in topics}
        selected: List[Question] = []
        i = slot
        while len(selected) < self._size:
            topic = topics[i % len(topics)]
            group = groups[topic]
            selected.append(group[cursors[topic] % len(group)])
            cursors[topic] += 1
            i += 1
        return selected

    def _rng_for(self, seed: Optional[int]) -> random.Random:
        if seed is not None:
            return random.Random(seed)
        if self._seed is not None:
            # Same shuffle for every call so slices never overlap.
            return random.Random(self._seed)
        return self._rng


def _records_from_payload(payload: Any) -> List[Mapping[str, Any]]:
    """Accept a flat list or ``{"topics": {name: [records]}}``."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(
        payload.get("topics"), Mapping
    ):
        records: List[Mapping[str, Any]] = []
        for topic, items in payload["topics"].items():
            if not isinstance(items, list):
                raise QuestionBankError(
                    f"topic '{topic}' must map to a list of questions"
                )
            for item in items:
                if isinstance(item, Mapping) and "topic" not in item:
                    item = {**item, "topic": topic}
                records.append(item)
        return records
    raise QuestionBankError(
        "question bank must be a list or a {'topics': {...}} mapping"
    )


def load_default_bank(
    *, seed: Optional[int] = None, strategy: str = "slice"
) -> QuestionBank:
    """Load the catalog shipped with the package."""

    resource = resources.files(_DATA_PACKAGE).joinpath(_DATA_FILE)
    payload = json.loads(resource.read_text(encoding="utf-8"))
    return QuestionBank.from_records(
        _records_from_payload(payload), seed=seed, strategy=strategy
    )
