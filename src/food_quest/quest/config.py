"""Configuration loader for quest sessions and storage."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

from food_quest.core import config as core_config
from food_quest.core import workspace as workspace_mod

from .question_bank import STRATEGIES
from .session import SessionSettings

CONFIG_FILENAME = "quest.toml"
CONFIG_ENV = "FOOD_QUEST_CONFIG"
ENV_PREFIX = "FOOD_QUEST_"
PROGRESS_FILENAME = "quest_progress.json"

_DEFAULT_LOG_LEVEL = "INFO"


class QuestConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class QuestConfig:
    """Fully resolved configuration for a quest command."""

    session: SessionSettings
    bank_seed: Optional[int]
    bank_path: Optional[Path]
    bank_strategy: str
    progress_file: Path
    log_level: str


@dataclass(frozen=True)
class ConfigOverrides:
    """CLI-sourced overrides applied on top of file/env options."""

    bank_seed: Optional[int] = None
    progress_file: Optional[Path] = None
    log_level: Optional[str] = None


@dataclass(frozen=True)
class LoadResult:
    config: QuestConfig
    layout: workspace_mod.WorkspaceLayout
    config_path: Optional[Path]


def load_config(
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[ConfigOverrides] = None,
    env: Optional[Mapping[str, str]] = None,
    workspace_path: Optional[Path] = None,
) -> LoadResult:
    """Load configuration applying precedence CLI > env > TOML > defaults."""

    overrides = overrides or ConfigOverrides()
    env_map = os.environ if env is None else env

    layout = workspace_mod.ensure_workspace(env=env_map, path=workspace_path)
    requested = _resolve_config_path(
        config_path=config_path,
        env_map=env_map,
        default_path=layout.path_for("config") / CONFIG_FILENAME,
    )

    table = _default_table()
    loaded_path: Optional[Path] = None
    if requested.exists():
        loaded_path = requested
        try:
            core_config.merge_defaults(
                table, core_config.load_toml(requested)
            )
        except core_config.TomlConfigError as exc:
            raise QuestConfigError(str(exc)) from exc
    elif config_path is not None or env_map.get(CONFIG_ENV, "").strip():
        raise QuestConfigError(f"Config file not found: {requested}")

    session_table = table["session"]
    pacing = table["pacing"]
    session = SessionSettings(
        hearts=_non_negative_int(session_table["hearts"], "session.hearts"),
        currency=_non_negative_int(
            session_table["currency"], "session.currency"
        ),
        hint_cost=_non_negative_int(
            session_table["hint_cost"], "session.hint_cost"
        ),
        reveal_cost=_non_negative_int(
            session_table["reveal_cost"], "session.reveal_cost"
        ),
        min_delay=_non_negative_int(pacing["min_ms"], "pacing.min_ms") / 1000,
        max_delay=_non_negative_int(pacing["max_ms"], "pacing.max_ms") / 1000,
        per_char_delay=_non_negative_int(
            pacing["per_char_ms"], "pacing.per_char_ms"
        )
        / 1000,
    )
    if session.min_delay > session.max_delay:
        raise QuestConfigError("pacing.min_ms must not exceed pacing.max_ms")

    bank = table["bank"]
    file_seed = bank["seed"]
    if file_seed is not None and (
        isinstance(file_seed, bool) or not isinstance(file_seed, int)
    ):
        raise QuestConfigError("'bank.seed' must be an integer.")
    seed = _pick_first(
        overrides.bank_seed,
        _parse_env_int(env_map, "SEED"),
        file_seed,
    )
    strategy = str(bank["strategy"]).strip().lower()
    if strategy not in STRATEGIES:
        raise QuestConfigError(
            f"Unknown bank strategy '{bank['strategy']}'. Expected one of: "
            + ", ".join(STRATEGIES)
            + "."
        )

    progress_candidate = _pick_first(
        overrides.progress_file,
        _parse_env_path(env_map, "PROGRESS_FILE"),
        _optional_path(table["storage"]["progress_file"]),
    )
    progress_file = _resolve_under(
        progress_candidate, layout.path_for("progress"), PROGRESS_FILENAME
    )

    log_level = str(
        _pick_first(
            overrides.log_level,
            env_map.get(f"{ENV_PREFIX}LOG_LEVEL") or None,
            table["logging"]["level"],
        )
    ).upper()

    config = QuestConfig(
        session=session,
        bank_seed=None if seed is None else int(seed),
        bank_path=_optional_path(bank["path"]),
        bank_strategy=strategy,
        progress_file=progress_file,
        log_level=log_level,
    )
    return LoadResult(config=config, layout=layout, config_path=loaded_path)


def _default_table() -> MutableMapping[str, MutableMapping[str, Any]]:
    # ``None`` marks keys that are valid but unset; TOML has no null.
    return {
        "session": {
            "hearts": 5,
            "currency": 100,
            "hint_cost": 10,
            "reveal_cost": 20,
        },
        "pacing": {"min_ms": 2000, "max_ms": 4500, "per_char_ms": 50},
        "bank": {"seed": None, "path": None, "strategy": "slice"},
        "storage": {"progress_file": None},
        "logging": {"level": _DEFAULT_LOG_LEVEL},
    }


def _resolve_config_path(
    *,
    config_path: Optional[Path],
    env_map: Mapping[str, str],
    default_path: Path,
) -> Path:
    if config_path is not None:
        return config_path.expanduser()
    env_candidate = env_map.get(CONFIG_ENV, "").strip()
    if env_candidate:
        return Path(env_candidate).expanduser()
    return default_path


def _pick_first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _non_negative_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QuestConfigError(f"'{key}' must be a non-negative integer.")
    return value


def _optional_path(value: Any) -> Optional[Path]:
    if value is None:
        return None
    text = str(value).strip()
    return Path(text).expanduser() if text else None


def _parse_env_int(env_map: Mapping[str, str], suffix: str) -> Optional[int]:
    raw = env_map.get(f"{ENV_PREFIX}{suffix}", "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise QuestConfigError(
            f"{ENV_PREFIX}{suffix} must be an integer, got '{raw}'."
        ) from exc


def _parse_env_path(env_map: Mapping[str, str], suffix: str) -> Optional[Path]:
    return _optional_path(env_map.get(f"{ENV_PREFIX}{suffix}"))


def _resolve_under(
    candidate: Optional[Path], base: Path, default_name: str
) -> Path:
    if candidate is None:
        return base / default_name
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve()
