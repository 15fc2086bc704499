from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

# Ensure project root and src/ are importable when tests spawn subprocesses
ROOT = TESTS_DIR.parent
for extra in (ROOT, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import (  # noqa: E402
    MemoryPersistence,
    StaticQuestionSource,
    make_questions,
)
from food_quest.core import workspace as workspace_mod  # noqa: E402


@pytest.fixture
def quest_home(tmp_path: Path, monkeypatch) -> Path:
    """Point the workspace env at a per-test directory."""

    home = tmp_path / "quest-home"
    monkeypatch.setenv(workspace_mod.WORKSPACE_ENV, str(home))
    for name in ("FOOD_QUEST_CONFIG", "FOOD_QUEST_SEED",
                 "FOOD_QUEST_PROGRESS_FILE", "FOOD_QUEST_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def question_source() -> StaticQuestionSource:
    return StaticQuestionSource(make_questions(10))


@pytest.fixture
def memory_persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture(autouse=True)
def _reset_quest_logger() -> Iterator[None]:
    """Undo handlers installed by CLI runs so caplog sees engine records."""

    yield
    logger = logging.getLogger("food_quest.quest")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
