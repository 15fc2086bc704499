from __future__ import annotations

import json

import pytest
from rich.console import Console

from food_quest.quest import cli as quest_cli
from food_quest.quest.question_bank import load_default_bank


def _console() -> Console:
    return Console(record=True, width=120, force_terminal=False)


def _correct_inputs(seed: int) -> list:
    pool = load_default_bank(seed=seed).questions_for_sub_round(0, 0)
    return [str(question.correct_index + 1) for question in pool]


def _progress_payload(home):
    path = home / "progress" / "quest_progress.json"
    return json.loads(path.read_text(encoding="utf-8"))


def test_init_writes_template(tmp_path, capsys):
    root = tmp_path / "ws"

    assert quest_cli.init_main(["--path", str(root)]) == 0
    target = root / "config" / "quest.toml"
    assert target.exists()
    assert "Wrote config template" in capsys.readouterr().out

    assert quest_cli.init_main(["--path", str(root)]) == 0
    assert "already exists" in capsys.readouterr().out


def test_status_on_fresh_workspace(quest_home):
    console = _console()

    assert quest_cli.status_main([], console=console) == 0

    output = console.export_text()
    assert "Easy Level" in output
    assert "Next up: L1/R1/S1" in output


def test_play_records_result_and_advances(quest_home):
    console = _console()
    inputs = iter(_correct_inputs(3))

    code = quest_cli.play_main(
        ["--seed", "3", "--no-pace"],
        console=console,
        input_provider=inputs.__next__,
    )

    assert code == 0
    output = console.export_text()
    assert "Playing L1/R1/S1" in output
    assert "PASSED" in output
    assert "Wonderful!" in output
    payload = _progress_payload(quest_home)
    first = payload["progress"]["levels"][0]["rounds"][0]["sub_rounds"][0]
    assert first["is_completed"] is True
    assert first["stars"] == 3

    status = _console()
    quest_cli.status_main([], console=status)
    assert "Next up: L1/R1/S2" in status.export_text()


def test_play_records_failed_attempt_stars(quest_home):
    console = _console()
    answers = _correct_inputs(5)
    wrong = [str(int(choice) % 2 + 1) for choice in answers[6:]]
    inputs = iter(answers[:6] + wrong)

    code = quest_cli.play_main(
        ["--seed", "5", "--no-pace"],
        console=console,
        input_provider=inputs.__next__,
    )

    assert code == 0
    assert "FAILED" in console.export_text()
    first = _progress_payload(quest_home)["progress"]["levels"][0]["rounds"][0][
        "sub_rounds"
    ][0]
    assert first["is_completed"] is True
    assert first["stars"] == 1


def test_play_quit_leaves_progress_untouched(quest_home):
    console = _console()
    inputs = iter(["q"])

    code = quest_cli.play_main(
        ["--no-pace"], console=console, input_provider=inputs.__next__
    )

    assert code == 0
    assert not (quest_home / "progress" / "quest_progress.json").exists()


def test_play_locked_target_returns_one(quest_home):
    console = _console()

    code = quest_cli.play_main(
        ["--level", "1", "--round", "2", "--sub-round", "1"],
        console=console,
        input_provider=lambda: "q",
    )

    assert code == 1
    assert "LOCKED" in console.export_text()


def test_play_requires_complete_position(quest_home):
    with pytest.raises(SystemExit) as excinfo:
        quest_cli.play_main(["--level", "1"], console=_console())

    assert excinfo.value.code == 2


def test_play_out_of_range_position_is_usage_error(quest_home):
    with pytest.raises(SystemExit) as excinfo:
        quest_cli.play_main(
            ["--level", "4", "--round", "1", "--sub-round", "1"],
            console=_console(),
        )

    assert excinfo.value.code == 2


def test_reset_requires_confirmation(quest_home):
    inputs = iter(_correct_inputs(3))
    quest_cli.play_main(
        ["--seed", "3", "--no-pace"],
        console=_console(),
        input_provider=inputs.__next__,
    )

    declined = _console()
    assert quest_cli.reset_main(
        [], console=declined, input_provider=lambda: "n"
    ) == 1
    assert "Reset cancelled." in declined.export_text()

    confirmed = _console()
    assert quest_cli.reset_main(["--yes"], console=confirmed) == 0
    first = _progress_payload(quest_home)["progress"]["levels"][0]["rounds"][0][
        "sub_rounds"
    ][0]
    assert first["is_completed"] is False


def test_questions_lists_topics(quest_home):
    console = _console()

    assert quest_cli.questions_main(["--topic", "fruits"], console=console) == 0

    output = console.export_text()
    assert "Fruits" in output
    assert "Vegetables" not in output

    empty = _console()
    assert quest_cli.questions_main(["--topic", "Desserts"], console=empty) == 1
    assert "No questions match" in empty.export_text()


def test_bad_config_is_usage_error(quest_home):
    config = quest_home / "config" / "quest.toml"
    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text("[session]\nlives = 2\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        quest_cli.status_main([], console=_console())

    assert excinfo.value.code == 2


def test_custom_bank_path(quest_home, tmp_path):
    bank = tmp_path / "bank.json"
    bank.write_text(
        json.dumps(
            [
                {
                    "id": f"custom_{i}",
                    "question": f"Custom question {i}?",
                    "options": ["Yes", "No"],
                    "correct_index": 0,
                    "topic": "Desserts",
                }
                for i in range(3)
            ]
        ),
        encoding="utf-8",
    )
    config = quest_home / "config" / "quest.toml"
    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(f'[bank]\npath = "{bank.as_posix()}"\n', encoding="utf-8")
    console = _console()

    assert quest_cli.questions_main([], console=console) == 0

    output = console.export_text()
    assert "Desserts" in output
    assert "custom_2" in output
