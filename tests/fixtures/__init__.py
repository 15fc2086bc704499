"""Shared testing fixtures and fakes for the food_quest test suite."""

from .quest import (  # noqa: F401
    FailingPersistence,
    MemoryPersistence,
    StaticQuestionSource,
    complete_many,
    make_question,
    make_questions,
    play_answers,
)

__all__ = [
    "FailingPersistence",
    "MemoryPersistence",
    "StaticQuestionSource",
    "complete_many",
    "make_question",
    "make_questions",
    "play_answers",
]
