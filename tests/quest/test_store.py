from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from fixtures import (
    FailingPersistence,
    MemoryPersistence,
    StaticQuestionSource,
    complete_many,
    make_question,
    make_questions,
)

from food_quest.quest.manager import RejectionReason
from food_quest.quest.models import Position, build_initial_progress
from food_quest.quest.store import (
    JsonFileProgressPersistence,
    PersistenceError,
    ProgressStore,
)


def test_load_without_saved_progress_builds_initial_tree(
    memory_persistence, question_source
):
    store = ProgressStore(memory_persistence, question_source=question_source)

    progress = store.load()

    assert store.current_frontier() == Position(0, 0, 0)
    assert len(progress.sub_round(Position(0, 0, 0)).questions) == 10


def test_load_restores_saved_progress():
    saved = complete_many(build_initial_progress(), 3)
    store = ProgressStore(MemoryPersistence(stored=saved))

    assert store.load() is saved
    assert store.current_frontier() == Position(0, 0, 3)


def test_load_discards_progress_that_breaks_invariants(caplog):
    broken = build_initial_progress()
    broken.levels[0].rounds[0].sub_rounds[2].is_locked = False
    store = ProgressStore(MemoryPersistence(stored=broken))

    with caplog.at_level(logging.WARNING, logger="food_quest.quest.store"):
        progress = store.load()

    assert progress is not broken
    assert store.current_frontier() == Position(0, 0, 0)
    assert "violates invariants" in caplog.text


def test_load_falls_back_when_persistence_raises(caplog):
    store = ProgressStore(FailingPersistence(raise_on_load=True))

    with caplog.at_level(logging.WARNING, logger="food_quest.quest.store"):
        store.load()

    assert store.current_frontier() == Position(0, 0, 0)
    assert "starting fresh" in caplog.text


def test_complete_sub_round_persists_and_emits_grants(memory_persistence):
    grants = []
    store = ProgressStore(memory_persistence, reward_sink=grants.append)
    store.load()

    for sub in range(5):
        store.complete_sub_round(0, 0, sub, 2)

    assert len(memory_persistence.saves) == 5
    assert memory_persistence.stored is store.progress
    assert [grant.node_id for grant in grants] == ["level_0_round_0"]
    assert store.progress.total_stars == 50


def test_rejected_and_unchanged_transitions_are_not_saved(memory_persistence):
    store = ProgressStore(memory_persistence)
    store.load()

    rejected = store.complete_sub_round(0, 3, 0, 3)
    assert rejected.rejection.reason is RejectionReason.LOCKED

    store.complete_sub_round(0, 0, 0, 3)
    store.complete_sub_round(0, 0, 0, 1)

    assert len(memory_persistence.saves) == 1


def test_failed_save_keeps_memory_state(caplog):
    persistence = FailingPersistence()
    store = ProgressStore(persistence)
    store.load()

    with caplog.at_level(logging.WARNING, logger="food_quest.quest.store"):
        store.complete_sub_round(0, 0, 0, 3)

    assert persistence.attempts == 1
    assert store.progress.sub_round(Position(0, 0, 0)).is_completed
    assert "keeping in-memory state" in caplog.text


def test_raising_save_is_logged_not_propagated(caplog):
    store = ProgressStore(FailingPersistence(raise_on_save=True))
    store.load()

    with caplog.at_level(logging.WARNING, logger="food_quest.quest.store"):
        transition = store.complete_sub_round(0, 0, 0, 3)

    assert transition.changed
    assert store.current_frontier() == Position(0, 0, 1)
    assert "progress save raised" in caplog.text


def test_executor_saves_are_fire_and_forget(memory_persistence):
    with ThreadPoolExecutor(max_workers=1) as executor:
        store = ProgressStore(memory_persistence, executor=executor)
        store.load()
        store.complete_sub_round(0, 0, 0, 3)
        store.complete_sub_round(0, 0, 1, 3)
        assert store.current_frontier() == Position(0, 0, 2)

    assert len(memory_persistence.saves) == 2
    assert memory_persistence.stored is store.progress


def test_reset_rebuilds_and_persists(memory_persistence, question_source):
    store = ProgressStore(memory_persistence, question_source=question_source)
    store.load()
    store.complete_sub_round(0, 0, 0, 3)

    transition = store.reset()

    assert transition.changed
    assert store.current_frontier() == Position(0, 0, 0)
    assert memory_persistence.stored is store.progress
    assert len(store.progress.sub_round(Position(0, 2, 4)).questions) == 10


def test_json_file_round_trip(tmp_path):
    path = tmp_path / "progress" / "quest_progress.json"
    persistence = JsonFileProgressPersistence(path)
    progress = complete_many(build_initial_progress(), 7, stars=2)

    assert persistence.load_progress() is None
    assert persistence.save_progress(progress) is True

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert "saved_at" in payload
    assert persistence.load_progress() == progress
    assert not path.with_name(path.name + ".lock").exists()


def test_json_file_rejects_garbage(tmp_path):
    path = tmp_path / "quest_progress.json"
    path.write_text("not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        JsonFileProgressPersistence(path).load_progress()

    path.write_text(json.dumps({"version": 1}), encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonFileProgressPersistence(path).load_progress()


def test_json_file_save_reports_lock_timeout(tmp_path, monkeypatch):
    from food_quest.quest import store as store_mod

    path = tmp_path / "quest_progress.json"
    path.with_name(path.name + ".lock").write_text("", encoding="utf-8")
    monkeypatch.setattr(store_mod, "_LOCK_TIMEOUT_SECONDS", 0.0)

    saved = JsonFileProgressPersistence(path).save_progress(
        build_initial_progress()
    )

    assert saved is False
    assert not path.exists()


def test_store_with_json_file_survives_restart(tmp_path):
    path = tmp_path / "quest_progress.json"
    first = ProgressStore(JsonFileProgressPersistence(path))
    first.load()
    first.complete_sub_round(0, 0, 0, 2)

    second = ProgressStore(JsonFileProgressPersistence(path))
    second.load()

    assert second.current_frontier() == Position(0, 0, 1)
    assert second.progress.sub_round(Position(0, 0, 0)).stars == 2


class _UnpluggedPersistence:
    def load_progress(self):
        raise OSError("disk gone")

    def save_progress(self, progress):
        return True


def test_load_falls_back_on_unexpected_adapter_error(caplog):
    store = ProgressStore(_UnpluggedPersistence())

    with caplog.at_level(logging.WARNING, logger="food_quest.quest.store"):
        progress = store.load()

    assert progress is store.progress
    assert store.current_frontier() == Position(0, 0, 0)
    assert "progress load raised" in caplog.text
    assert "disk gone" in caplog.text


@pytest.mark.parametrize("node", ["rewards", "sub_rounds"])
def test_load_falls_back_when_saved_node_is_not_a_mapping(
    tmp_path, caplog, node
):
    path = tmp_path / "quest_progress.json"
    JsonFileProgressPersistence(path).save_progress(
        complete_many(build_initial_progress(), 2)
    )
    payload = json.loads(path.read_text(encoding="utf-8"))
    first_round = payload["progress"]["levels"][0]["rounds"][0]
    first_round[node] = [] if node == "rewards" else ["oops"]
    path.write_text(json.dumps(payload), encoding="utf-8")
    store = ProgressStore(JsonFileProgressPersistence(path))

    with caplog.at_level(logging.WARNING, logger="food_quest.quest.store"):
        store.load()

    assert store.current_frontier() == Position(0, 0, 0)
    assert "progress load failed" in caplog.text


def test_saved_question_pools_outlive_a_new_bank(tmp_path):
    path = tmp_path / "quest_progress.json"
    first = ProgressStore(
        JsonFileProgressPersistence(path),
        question_source=StaticQuestionSource(make_questions(10)),
    )
    first.load()
    first.complete_sub_round(0, 0, 0, 3)
    other_source = StaticQuestionSource(
        [make_question(i) for i in range(100, 110)]
    )

    second = ProgressStore(
        JsonFileProgressPersistence(path), question_source=other_source
    )
    second.load()
    kept = second.progress.sub_round(Position(0, 0, 1)).questions
    second.reset()
    rebuilt = second.progress.sub_round(Position(0, 0, 1)).questions

    assert [q.id for q in kept] == [f"q{i}" for i in range(10)]
    assert [q.id for q in rebuilt] == [f"q{i}" for i in range(100, 110)]
