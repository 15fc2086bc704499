from __future__ import annotations

from pathlib import Path

import pytest

from food_quest.quest import config as quest_config
from food_quest.quest.config import ConfigOverrides, QuestConfigError


def _write_config(home: Path, text: str) -> Path:
    path = home / "config" / quest_config.CONFIG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file(quest_home):
    result = quest_config.load_config()

    config = result.config
    assert result.config_path is None
    assert result.layout.home == quest_home.resolve()
    assert config.session.hearts == 5
    assert config.session.currency == 100
    assert config.session.min_delay == pytest.approx(2.0)
    assert config.session.per_char_delay == pytest.approx(0.05)
    assert config.bank_seed is None
    assert config.bank_path is None
    assert config.bank_strategy == "slice"
    assert config.log_level == "INFO"
    assert config.progress_file == (
        quest_home.resolve() / "progress" / "quest_progress.json"
    )


def test_toml_values_are_applied(quest_home):
    path = _write_config(
        quest_home,
        "[session]\nhint_cost = 5\n"
        "[pacing]\nmin_ms = 100\nmax_ms = 200\n"
        '[bank]\nseed = 9\nstrategy = "balanced"\npath = "bank.json"\n'
        '[storage]\nprogress_file = "mine.json"\n'
        '[logging]\nlevel = "debug"\n',
    )

    result = quest_config.load_config()

    config = result.config
    assert result.config_path.resolve() == path.resolve()
    assert config.session.hint_cost == 5
    assert config.session.max_delay == pytest.approx(0.2)
    assert config.bank_seed == 9
    assert config.bank_strategy == "balanced"
    assert config.bank_path == Path("bank.json")
    assert config.progress_file.name == "mine.json"
    assert config.progress_file.parent.name == "progress"
    assert config.log_level == "DEBUG"


def test_precedence_cli_over_env_over_file(quest_home, monkeypatch):
    _write_config(quest_home, "[bank]\nseed = 1\n")

    assert quest_config.load_config().config.bank_seed == 1

    monkeypatch.setenv("FOOD_QUEST_SEED", "2")
    assert quest_config.load_config().config.bank_seed == 2

    overrides = ConfigOverrides(bank_seed=3, log_level="warning")
    config = quest_config.load_config(overrides=overrides).config
    assert config.bank_seed == 3
    assert config.log_level == "WARNING"


def test_env_mapping_controls_paths(tmp_path):
    custom = tmp_path / "custom.toml"
    custom.write_text("[session]\nhearts = 3\n", encoding="utf-8")
    env = {
        "FOOD_QUEST_DATA_HOME": str(tmp_path / "home"),
        "FOOD_QUEST_CONFIG": str(custom),
        "FOOD_QUEST_PROGRESS_FILE": str(tmp_path / "elsewhere.json"),
        "FOOD_QUEST_LOG_LEVEL": "error",
    }

    result = quest_config.load_config(env=env)

    assert result.config_path == custom
    assert result.config.session.hearts == 3
    assert result.config.progress_file == (tmp_path / "elsewhere.json").resolve()
    assert result.config.log_level == "ERROR"


def test_missing_explicit_config_errors(quest_home, tmp_path):
    with pytest.raises(QuestConfigError, match="not found"):
        quest_config.load_config(config_path=tmp_path / "absent.toml")


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("[session]\nlives = 3\n", "Unknown configuration key"),
        ("[session]\nhearts = -1\n", "non-negative"),
        ('[session]\ncurrency = "lots"\n', "non-negative"),
        ("[pacing]\nmin_ms = 5000\n", "must not exceed"),
        ('[bank]\nstrategy = "random"\n', "Unknown bank strategy"),
        ('[bank]\nseed = "abc"\n', "bank.seed"),
        ("[session\n", "parse"),
    ],
)
def test_invalid_config_values(quest_home, text, message):
    _write_config(quest_home, text)

    with pytest.raises(QuestConfigError, match=message):
        quest_config.load_config()


def test_invalid_env_seed(quest_home, monkeypatch):
    monkeypatch.setenv("FOOD_QUEST_SEED", "seven")

    with pytest.raises(QuestConfigError, match="FOOD_QUEST_SEED"):
        quest_config.load_config()
