"""CLI entry points for the quest ladder (status, play, reset, questions)."""

from __future__ import annotations

import argparse
import random
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from rich.console import Console
from rich.table import Table

from food_quest.core import config_templates
from food_quest.core.config_templates import ConfigTemplateError
from food_quest.core.logging import configure_logger
from food_quest.core.workspace import WorkspaceError, ensure_workspace

from .config import (
    CONFIG_FILENAME,
    ConfigOverrides,
    LoadResult,
    QuestConfigError,
    load_config,
)
from .models import InvalidIndexError, Position
from .question_bank import QuestionBank, QuestionBankError, load_default_bank
from .scheduler import ManualScheduler
from .session import SessionController
from .store import JsonFileProgressPersistence, ProgressStore
from . import console as quest_console

LOGGER_NAME = "food_quest.quest"

InputProvider = Callable[[], str]


@dataclass
class _Runtime:
    load_result: LoadResult
    bank: QuestionBank
    store: ProgressStore
    console: Console


def _common_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to quest.toml (defaults to the workspace config dir).",
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        help="Override the workspace root (FOOD_QUEST_DATA_HOME).",
    )
    parser.add_argument("--log-level", help="Logging level for the run.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Mirror log records to stderr.",
    )
    return parser


def _bootstrap(
    args: argparse.Namespace,
    parser: argparse.ArgumentParser,
    *,
    console: Optional[Console] = None,
    seed: Optional[int] = None,
) -> _Runtime:
    try:
        load_result = load_config(
            config_path=args.config,
            overrides=ConfigOverrides(bank_seed=seed, log_level=args.log_level),
            workspace_path=args.workspace,
        )
    except (QuestConfigError, WorkspaceError) as exc:
        parser.error(str(exc))

    config = load_result.config
    logger, _ = configure_logger(
        LOGGER_NAME,
        log_dir=load_result.layout.path_for("logs"),
        level=config.log_level,
        verbose=args.verbose,
    )
    try:
        if config.bank_path is not None:
            bank = QuestionBank.from_path(
                config.bank_path,
                seed=config.bank_seed,
                strategy=config.bank_strategy,
            )
        else:
            bank = load_default_bank(
                seed=config.bank_seed, strategy=config.bank_strategy
            )
    except QuestionBankError as exc:
        parser.error(str(exc))

    out = console or Console()
    store = ProgressStore(
        JsonFileProgressPersistence(config.progress_file),
        question_source=bank,
        reward_sink=lambda grant: quest_console.render_grant(out, grant),
    )
    store.load()
    logger.debug(
        "quest runtime ready",
        extra={"progress_file": config.progress_file, "bank": len(bank)},
    )
    return _Runtime(load_result, bank, store, out)


def init_main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="quest init",
        description="Prepare the workspace and write the quest.toml template.",
    )
    parser.add_argument("--path", type=Path, help="Workspace root override.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing quest.toml.",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        layout = ensure_workspace(path=args.path)
    except WorkspaceError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    target = layout.path_for("config") / CONFIG_FILENAME
    try:
        config_templates.get_template("quest").write(
            target, overwrite=args.force
        )
    except ConfigTemplateError as exc:
        sys.stdout.write(f"Workspace ready at {layout.home}\n{exc}\n")
        return 0
    sys.stdout.write(
        f"Workspace ready at {layout.home}\nWrote config template {target}\n"
    )
    return 0


def status_main(
    argv: Sequence[str] | None = None, *, console: Optional[Console] = None
) -> int:
    parser = _common_parser("quest status", "Show quest progress.")
    args = parser.parse_args(list(argv) if argv is not None else None)
    runtime = _bootstrap(args, parser, console=console)
    quest_console.render_progress(
        runtime.console,
        runtime.store.progress,
        runtime.store.current_frontier(),
    )
    return 0


def play_main(
    argv: Sequence[str] | None = None,
    *,
    console: Optional[Console] = None,
    input_provider: Optional[InputProvider] = None,
) -> int:
    parser = _common_parser("quest play", "Play one sub-round.")
    parser.add_argument("--level", type=int, help="Level number (1-3).")
    parser.add_argument("--round", type=int, help="Round number (1-10).")
    parser.add_argument(
        "--sub-round", type=int, help="Sub-round number (1-5)."
    )
    parser.add_argument(
        "--seed",
        type=int,
        help=(
            "Seed for hint clues. Question pools follow it only until "
            "progress is first saved."
        ),
    )
    parser.add_argument(
        "--no-pace",
        action="store_true",
        help="Skip the read-aloud pause between questions.",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)
    runtime = _bootstrap(args, parser, console=console, seed=args.seed)
    out = runtime.console
    store = runtime.store

    position = _requested_position(args, parser) or store.current_frontier()
    if position is None:
        out.print("[bold green]Every sub-round is complete![/]")
        return 0

    scheduler = ManualScheduler()
    controller = SessionController(
        scheduler,
        settings=runtime.load_result.config.session,
        rng=random.Random(args.seed),
    )
    try:
        rejection = controller.start_session(
            store.progress,
            position.level_index,
            position.round_index,
            position.sub_round_index,
        )
    except InvalidIndexError as exc:
        parser.error(str(exc))
    if rejection is not None:
        quest_console.render_rejection(out, rejection)
        return 1

    out.print(f"[bold]Playing {position}[/]")
    result = quest_console.run_console_session(
        controller,
        scheduler,
        out,
        input_provider or input,
        pace=None if args.no_pace else time.sleep,
    )
    if result is None:
        return 0
    quest_console.render_result(out, result)
    store.complete_sub_round(
        position.level_index,
        position.round_index,
        position.sub_round_index,
        result.stars_earned,
    )
    return 0


def reset_main(
    argv: Sequence[str] | None = None,
    *,
    console: Optional[Console] = None,
    input_provider: Optional[InputProvider] = None,
) -> int:
    parser = _common_parser("quest reset", "Discard all quest progress.")
    parser.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation."
    )
    args = parser.parse_args(list(argv) if argv is not None else None)
    runtime = _bootstrap(args, parser, console=console)
    if not args.yes:
        ask = input_provider or input
        try:
            answer = ask()
        except (EOFError, KeyboardInterrupt):
            answer = ""
        if answer.strip().lower() not in {"y", "yes"}:
            runtime.console.print("Reset cancelled.")
            return 1
    runtime.store.reset()
    runtime.console.print("Quest progress reset to the first sub-round.")
    return 0


def questions_main(
    argv: Sequence[str] | None = None, *, console: Optional[Console] = None
) -> int:
    parser = _common_parser("quest questions", "List the question bank.")
    parser.add_argument("--topic", help="Only show one topic.")
    args = parser.parse_args(list(argv) if argv is not None else None)
    runtime = _bootstrap(args, parser, console=console)

    groups = runtime.bank.by_topic()
    wanted = (args.topic or "").strip().lower()
    shown = 0
    for topic in sorted(groups):
        if wanted and topic.lower() != wanted:
            continue
        table = Table(title=topic, expand=False)
        table.add_column("ID", style="cyan")
        table.add_column("Question")
        table.add_column("Answer", style="green")
        for question in groups[topic]:
            table.add_row(question.id, question.prompt, question.correct_answer)
            shown += 1
        runtime.console.print(table)
    if shown == 0:
        runtime.console.print("No questions match that topic.")
        return 1
    return 0


def _requested_position(
    args: argparse.Namespace, parser: argparse.ArgumentParser
) -> Optional[Position]:
    given = [args.level, args.round, args.sub_round]
    if all(value is None for value in given):
        return None
    if any(value is None for value in given):
        parser.error("--level, --round and --sub-round go together.")
    return Position(args.level - 1, args.round - 1, args.sub_round - 1)
