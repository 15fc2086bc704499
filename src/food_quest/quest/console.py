"""Rich-powered console host for quest sessions and progress views.

The terminal plays the part of the session host and reward display: it
renders questions, feeds commands into a :class:`SessionController`, drives
the manual scheduler to honour the read-aloud pause, and shows the
resulting stars and treasure rewards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .manager import Rejection, RewardGrant
from .models import Position, QuestError, QuestProgress, Question
from .scheduler import ManualScheduler
from .scoring import result_message, verdict_label
from .session import (
    SessionController,
    SessionPhase,
    SessionResult,
    reading_delay,
)

InputProvider = Callable[[], str]
Pacer = Callable[[float], None]

__all__ = [
    "PlayCommand",
    "parse_play_command",
    "render_grant",
    "render_progress",
    "render_rejection",
    "render_result",
    "run_console_session",
]


@dataclass(frozen=True)
class PlayCommand:
    """Normalized user command parsed from console input."""

    type: Literal["answer", "hint", "reveal", "quit"]
    index: Optional[int] = None


def parse_play_command(raw: Optional[str]) -> Optional[PlayCommand]:
    """Parse ``1``-``9``, ``a``-``z``, hint, reveal or quit."""

    if raw is None:
        return None
    text = raw.strip().lower()
    if not text:
        return None
    if text in {"h", "hint"}:
        return PlayCommand("hint")
    if text in {"r", "reveal", "see", "answer"}:
        return PlayCommand("reveal")
    if text in {"q", "quit", "exit"}:
        return PlayCommand("quit")
    if text.isdigit() and int(text) >= 1:
        return PlayCommand("answer", int(text) - 1)
    if len(text) == 1 and text.isalpha():
        return PlayCommand("answer", ord(text) - ord("a"))
    return None


def run_console_session(
    controller: SessionController,
    scheduler: ManualScheduler,
    console: Console,
    input_provider: InputProvider,
    *,
    pace: Optional[Pacer] = None,
) -> Optional[SessionResult]:
    """Play the controller's live session to completion or abandonment."""

    while controller.is_active:
        question = controller.current_question
        if question is None:
            raise QuestError("Live session has no current question.")
        if controller.phase is SessionPhase.ANSWERED:
            delay = reading_delay(question.prompt, controller.settings)
            if pace is not None:
                pace(delay)
            scheduler.advance(delay)
            continue

        _render_question(console, controller, question)
        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            controller.abandon()
            return None
        command = parse_play_command(raw)
        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        if command.type == "quit":
            controller.abandon()
            console.print(
                "\n[bold yellow]Leaving without saving this sub-round.[/]"
            )
            return None
        _apply_command(command, controller, question, console)

    return controller.result


def _apply_command(
    command: PlayCommand,
    controller: SessionController,
    question: Question,
    console: Console,
) -> None:
    if command.type == "hint":
        hint = controller.use_hint()
        if hint is None:
            console.print("[red]No hint available for this question.[/]")
        else:
            console.print(Panel(hint, title="Hint", border_style="cyan"))
        return
    if command.type == "reveal":
        index = controller.reveal_answer()
        if index is None:
            console.print("[red]Not enough stars to see the answer.[/]")
        else:
            console.print(
                f"The answer is [bold]{question.options[index]}[/]. "
                "[dim](no point for this one)[/]"
            )
        return
    if command.index is None or command.index >= len(question.options):
        console.print("[red]That is not one of the options.[/]")
        return
    answer = controller.submit_answer(command.index)
    if answer is None:
        return
    if answer.is_correct:
        console.print("[bold green]Correct![/]")
    else:
        console.print(
            f"[bold red]Not quite.[/] The answer is "
            f"[bold]{question.correct_answer}[/]."
        )
    if question.explanation:
        console.print(Text(question.explanation, style="dim"))


def _render_question(
    console: Console, controller: SessionController, question: Question
) -> None:
    step = controller.progress()
    header = Text.assemble(
        (f"Question {step.current}", "bold cyan"),
        (f" / {step.total}", "dim"),
        (f"  ♥ {controller.hearts}  ★ {controller.currency}", "magenta"),
    )
    console.print()
    console.rule(header)
    console.print(Text(question.prompt, style="bold"))

    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Key", justify="center", style="cyan")
    table.add_column("Option")
    for idx, option in enumerate(question.options):
        table.add_row(str(idx + 1), option)
    console.print(table)

    if controller.hint_text:
        console.print(Text(f"Hint: {controller.hint_text}", style="cyan"))
    console.print(
        Text(
            "Commands: option number, h (hint "
            f"{controller.settings.hint_cost}★), r (reveal "
            f"{controller.settings.reveal_cost}★), q (quit)",
            style="dim",
        )
    )


def render_result(console: Console, result: SessionResult) -> None:
    console.print()
    console.rule(Text("Sub-Round Complete", style="bold magenta"))
    stars = "★" * result.stars_earned + "☆" * (3 - result.stars_earned)
    summary = Table(show_header=False, box=box.MINIMAL_DOUBLE_HEAD)
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Result", verdict_label(result.passed))
    summary.add_row("Score", f"{result.score}/{result.total_questions}")
    summary.add_row("Hints used", str(result.hints_used))
    summary.add_row("Stars", stars)
    console.print(summary)
    console.print(Text(result_message(result.score), style="bold"))


def render_grant(console: Console, grant: RewardGrant) -> None:
    title = "Treasure Unlocked!" if grant.kind == "round" else "Level Mastered!"
    lines = [f"+{grant.stars} stars"]
    if grant.badges:
        lines.append("Badges: " + ", ".join(sorted(grant.badges)))
    if grant.prizes:
        lines.append("Prizes: " + ", ".join(sorted(grant.prizes)))
    console.print(
        Panel("\n".join(lines), title=title, border_style="yellow")
    )


def render_rejection(console: Console, rejection: Rejection) -> None:
    console.print(
        Panel(rejection.message, title="LOCKED", border_style="red")
    )


def render_progress(
    console: Console,
    progress: QuestProgress,
    frontier: Optional[Position],
) -> None:
    """Show every level as a round-by-sub-round star grid."""

    for li, level in enumerate(progress.levels):
        status = _status(level.is_completed, level.is_locked)
        table = Table(
            title=f"{level.name} ({status}, {level.total_stars}★)",
            box=box.SIMPLE,
            expand=False,
        )
        table.add_column("Round")
        for si in range(len(level.rounds[0].sub_rounds)):
            table.add_column(f"S{si + 1}", justify="center")
        table.add_column("Treasure", justify="center")
        for ri, rnd in enumerate(level.rounds):
            cells = []
            for si, sub_round in enumerate(rnd.sub_rounds):
                if frontier == Position(li, ri, si):
                    cells.append("▶")
                elif sub_round.is_completed:
                    cells.append("★" * sub_round.stars or "✓")
                elif sub_round.is_locked:
                    cells.append("🔒")
                else:
                    cells.append("·")
            treasure = f"+{rnd.rewards.stars}" if rnd.is_completed else "-"
            table.add_row(rnd.name, *cells, treasure)
        console.print(table)

    console.print(
        f"Total stars: [bold]{progress.total_stars}[/]  "
        f"Badges: {len(progress.total_badges)}  "
        f"Prizes: {len(progress.total_prizes)}"
    )
    if frontier is None:
        console.print("[bold green]Every sub-round is complete![/]")
    else:
        console.print(f"Next up: [bold]{frontier}[/]")


def _status(completed: bool, locked: bool) -> str:
    if completed:
        return "completed"
    if locked:
        return "locked"
    return "open"
