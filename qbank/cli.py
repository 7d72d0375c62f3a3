"""
CLI Interface
=============
Command-line interface for the question bank.

Usage:
    qbank import <file|->           parse generated text and add it
    qbank validate <file|->         parse without saving
    qbank stats                     bank counts
    qbank history [--marked-only]   newest first
    qbank show|delete|mark <id>
    qbank note <id> <text>
    qbank practice [--focus-new]    interactive practice session
"""

from __future__ import annotations

import sys
import time
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .bank import BankManager
from .config import BACKENDS, QBankConfig, open_bank, setup_logging
from .models import AddPlan, Option, ParseResult, Phase, Question
from .session import SessionController
from .text_parser import QuestionParser

console = Console()

PREVIEW_CHARS = 100


@click.group()
@click.version_option(version=__version__, prog_name="qbank")
@click.option(
    "--store", "-s",
    default=None,
    help="Bank file (json) or database (sqlite) path",
)
@click.option(
    "--backend", "-b",
    default=None,
    type=click.Choice(BACKENDS),
    help="Storage backend",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--seed",
    default=None,
    type=int,
    help="Random seed for reproducible shuffles",
)
@click.pass_context
def cli(ctx, store, backend, log_level, log_file, seed):
    """Infinite Question Bank: parse generated questions and practice them."""
    try:
        config = QBankConfig.from_env(
            store_path=store,
            backend=backend,
            log_level=log_level,
            log_file=log_file,
            seed=seed,
        )
    except ValueError as e:
        raise click.UsageError(str(e))

    setup_logging(config)
    ctx.obj = config


def _bank(ctx) -> BankManager:
    return open_bank(ctx.obj)


def _require(bank: BankManager, question_id: str) -> Question:
    question = bank.get(question_id)
    if question is None:
        console.print(f"[yellow]No question with id:[/] {escape(question_id)}")
        sys.exit(1)
    return question


def _warn_persistence(bank: BankManager):
    if bank.last_persistence_error:
        console.print(
            f"[yellow]Warning:[/] changes kept in memory only: "
            f"{escape(bank.last_persistence_error)}"
        )


# ─── Import / Validate ────────────────────────────────────────────────────────


@cli.command("import")
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option(
    "--yes", "-y",
    is_flag=True,
    default=False,
    help="Evict the oldest questions without asking when over capacity",
)
@click.pass_context
def import_(ctx, source, yes: bool):
    """Parse generated text from SOURCE (or - for stdin) and add it."""
    config: QBankConfig = ctx.obj
    result = QuestionParser(rng=config.make_rng()).parse(source.read())

    if not result.ok:
        console.print(f"[red]Error:[/] {escape(result.error.message)}")
        sys.exit(1)

    bank = _bank(ctx)
    outcome = bank.add(
        result.questions,
        confirm=None if yes else _confirm_eviction,
    )

    if not outcome.committed:
        console.print("[yellow]Import cancelled, bank unchanged.[/]")
        return

    message = f"Successfully added {outcome.added} new question(s)!"
    if outcome.evicted:
        message += f" The oldest {len(outcome.evicted)} questions were removed."
    console.print(f"[green]✓[/] {message}")
    if result.pairs_skipped:
        console.print(
            f"[dim]{result.pairs_skipped} block(s) skipped as malformed.[/]"
        )
    console.print(f"[dim]Bank size: {len(bank)} / {bank.capacity}[/]")
    _warn_persistence(bank)


def _confirm_eviction(plan: AddPlan) -> bool:
    """Show the questions an add would evict and ask before committing."""
    console.print()
    console.print(
        Panel.fit(
            f"Your question bank is capped at {plan.capacity} questions. "
            f"To add {len(plan.incoming)} new question(s), the "
            f"{len(plan.evicted)} oldest questions will be permanently deleted.",
            title="Capacity reached",
            border_style="yellow",
        )
    )

    table = Table(title="Questions to be deleted", border_style="red")
    table.add_column("#", justify="right")
    table.add_column("Question")
    for i, q in enumerate(plan.evicted, start=1):
        table.add_row(str(i), _preview(q.question_text))
    console.print(table)

    return click.confirm("Delete these and add the new questions?", default=False)


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.pass_context
def validate(ctx, source):
    """Parse SOURCE without saving and report what would be imported."""
    config: QBankConfig = ctx.obj
    result = QuestionParser(rng=config.make_rng()).parse(source.read())
    _display_parse_report(result)
    if not result.ok:
        sys.exit(1)


# ─── Bank Commands ────────────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def stats(ctx):
    """Show question bank counts."""
    stats = _bank(ctx).stats()

    table = Table(title="Question Bank", border_style="cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total", f"{stats.total} / {stats.capacity}")
    table.add_row("Usage", f"{stats.usage_percent}%")
    table.add_row("New", str(stats.new))
    table.add_row("Review", str(stats.review))
    table.add_row("Marked", str(stats.marked))
    table.add_row("With notes", str(stats.annotated))
    console.print(table)


@cli.command()
@click.option("--marked-only", is_flag=True, default=False, help="Only marked questions")
@click.option("--limit", "-n", default=None, type=int, help="Show at most N questions")
@click.pass_context
def history(ctx, marked_only: bool, limit: Optional[int]):
    """List stored questions, newest first."""
    bank = _bank(ctx)
    if len(bank) == 0:
        console.print("[dim]Your question bank is empty.[/]")
        return

    items = bank.history(marked_only=marked_only)
    if not items:
        console.print("[dim]No marked questions found.[/]")
        return
    if limit is not None:
        items = items[:limit]

    table = Table(title="History", border_style="cyan")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("★", justify="center")
    table.add_column("Practiced", justify="center")
    table.add_column("Question")
    for q in items:
        table.add_row(
            q.id,
            "★" if q.marked else "",
            "[green]✓[/]" if q.practiced else "",
            _preview(q.question_text),
        )
    console.print(table)


@cli.command()
@click.argument("question_id")
@click.pass_context
def show(ctx, question_id: str):
    """Show one question with its answer, explanation and note."""
    question = _require(_bank(ctx), question_id)
    _display_question(question, reveal=True)
    if question.user_note:
        console.print(Panel(escape(question.user_note), title="Note", border_style="blue"))


@cli.command()
@click.argument("question_id")
@click.pass_context
def delete(ctx, question_id: str):
    """Delete a question."""
    bank = _bank(ctx)
    _require(bank, question_id)
    bank.delete(question_id)
    console.print(f"[green]✓[/] Deleted {question_id}")
    _warn_persistence(bank)


@cli.command()
@click.argument("question_id")
@click.pass_context
def mark(ctx, question_id: str):
    """Toggle the mark on a question."""
    bank = _bank(ctx)
    _require(bank, question_id)
    bank.toggle_mark(question_id)
    state = "Marked" if bank.get(question_id).marked else "Unmarked"
    console.print(f"[green]✓[/] {state} {question_id}")
    _warn_persistence(bank)


@cli.command()
@click.argument("question_id")
@click.argument("text")
@click.pass_context
def note(ctx, question_id: str, text: str):
    """Set the note on a question."""
    bank = _bank(ctx)
    _require(bank, question_id)
    bank.set_note(question_id, text)
    console.print(f"[green]✓[/] Note saved for {question_id}")
    _warn_persistence(bank)


# ─── Practice ─────────────────────────────────────────────────────────────────


PRACTICE_HELP = (
    "[dim]1-9 answer · x <number> eliminate · n next · e explanation · "
    "m mark · r reshuffle · f focus-new · a analysis · note <text> · q quit[/]"
)

# Outcomes of one practice command
STAY = "stay"
MOVED = "moved"
QUIT = "quit"


class _WallClockTimer:
    """Feeds whole elapsed seconds into a session without drifting."""

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self.last = clock()

    def restart(self):
        self.last = self.clock()

    def feed(self, session: SessionController):
        whole = int(self.clock() - self.last)
        if whole > 0:
            session.tick(whole)
            self.last += whole


@cli.command()
@click.option(
    "--focus-new",
    is_flag=True,
    default=False,
    help="Stop after the new questions instead of moving on to review",
)
@click.pass_context
def practice(ctx, focus_new: bool):
    """Practice new questions, then review practiced ones."""
    config: QBankConfig = ctx.obj
    bank = _bank(ctx)

    if len(bank) == 0:
        console.print(
            "[dim]Your question bank is empty. Use 'qbank import' to add some.[/]"
        )
        return

    session = SessionController(bank, rng=config.make_rng())
    if focus_new:
        session.toggle_focus_new_only()

    timer = _WallClockTimer()
    console.print(PRACTICE_HELP)
    outcome = MOVED

    try:
        while outcome != QUIT:
            if session.current is None:
                console.print("[dim]No questions available in this section.[/]")
                break

            if outcome == MOVED:
                timer.restart()
                _display_session(session)

            command = click.prompt(">", default="", show_default=False).strip()
            timer.feed(session)
            outcome = _run_practice_command(session, command)
    finally:
        session.close()
        _warn_persistence(bank)


def _run_practice_command(session: SessionController, command: str) -> str:
    """Apply one practice command; returns STAY, MOVED or QUIT."""
    question = session.current
    lowered = command.lower()

    if lowered in ("q", "quit", "exit"):
        return QUIT

    if lowered == "n":
        return _advance(session)

    if lowered == "e":
        if session.has_answered:
            console.print(
                Panel(escape(question.explanation), title="Explanation", border_style="blue")
            )
        else:
            console.print("[yellow]Answer the question first.[/]")
        return STAY

    if lowered == "m":
        session.toggle_mark_current()
        console.print("★ Marked" if session.current.marked else "☆ Unmarked")
        return STAY

    if lowered == "r":
        if session.reshuffle_review():
            console.print("[cyan]Review deck reshuffled.[/]")
            return MOVED
        console.print("[dim]Reshuffle is only available in review with 2+ questions.[/]")
        return STAY

    if lowered == "f":
        state = session.toggle_focus_new_only()
        console.print(f"Focus on new questions: {'on' if state else 'off'}")
        return STAY

    if lowered == "a":
        state = session.toggle_analysis_mode()
        console.print(f"Analysis mode: {'on' if state else 'off'}")
        if state and session.note_draft:
            console.print(Panel(escape(session.note_draft), title="Note", border_style="blue"))
        return STAY

    if lowered.startswith("note "):
        if not session.analysis_mode:
            console.print("[yellow]Turn on analysis mode (a) to edit notes.[/]")
            return STAY
        session.note_draft = command[5:].strip()
        session.save_note()
        console.print("[green]✓[/] Note saved")
        return STAY

    if lowered.startswith("x "):
        option = _option_for_number(question, lowered[2:].strip())
        if option is None:
            console.print("[yellow]Unknown option.[/]")
        elif session.toggle_eliminated(option.text):
            _display_options(session)
        else:
            console.print("[dim]Already answered.[/]")
        return STAY

    option = _option_for_number(question, lowered)
    if option is not None:
        if session.select_answer(option.text):
            _display_options(session)
            verdict = "[green]Correct![/]" if session.is_correct else "[red]Incorrect.[/]"
            console.print(f"{verdict} [dim]({session.format_elapsed()})[/]")
        else:
            console.print("[dim]Already answered.[/]")
        return STAY

    if command:
        console.print(PRACTICE_HELP)
    return STAY


def _advance(session: SessionController) -> str:
    if not session.has_answered:
        console.print("[yellow]Answer the question first.[/]")
        return STAY
    if session.phase == Phase.REVIEW and not session.can_advance:
        console.print("[dim]End of review deck. Reshuffle (r) or quit (q).[/]")
        return STAY

    was_new = session.phase == Phase.NEW
    session.next()

    if was_new and session.focus_new_only and session.phase == Phase.REVIEW:
        console.print("[green]All new questions practiced.[/]")
        return QUIT
    return MOVED


def _option_for_number(question: Question, token: str) -> Optional[Option]:
    if not token.isdecimal():
        return None
    index = int(token) - 1
    if not 0 <= index < len(question.options):
        return None
    return question.options[index]


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > PREVIEW_CHARS:
        text = text[:PREVIEW_CHARS] + "..."
    return escape(text)


def _display_session(session: SessionController):
    position, total = session.progress
    label = "New" if session.phase == Phase.NEW else "Review"
    star = "★" if session.current.marked else "☆"
    console.print()
    console.print(
        f"[bold cyan]{label} Question {position} of {total}[/] {star}"
    )
    console.print(escape(session.current.question_text))
    _display_options(session)


def _display_options(session: SessionController):
    question = session.current
    for number, option in enumerate(question.options, start=1):
        line = f"  {number}. {escape(option.text)}"
        if session.has_answered:
            if option.is_correct:
                line = f"[green]{line} ✓[/]"
            elif option.text == session.selected_answer:
                line = f"[red]{line} ✗[/]"
            else:
                line = f"[dim]{line}[/]"
        elif option.text in session.eliminated_options:
            line = f"[dim strike]{line}[/]"
        console.print(line)


def _display_question(question: Question, reveal: bool = False):
    console.print()
    console.print(
        Panel(escape(question.question_text), title=question.id, border_style="cyan")
    )
    for number, option in enumerate(question.options, start=1):
        suffix = " [green](Correct)[/]" if reveal and option.is_correct else ""
        console.print(f"  {number}. {escape(option.text)}{suffix}")
    if reveal:
        console.print(
            Panel(escape(question.explanation), title="Explanation", border_style="blue")
        )


def _display_parse_report(result: ParseResult):
    table = Table(title="Parse Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    table.add_row(
        "Blocks Detected",
        str(result.pairs_detected),
        "[green]✓[/]" if result.pairs_detected else "[red]✗[/]",
    )
    table.add_row(
        "Questions Accepted",
        str(len(result.questions)),
        "[green]✓[/]" if result.questions else "[red]✗[/]",
    )
    table.add_row(
        "Blocks Skipped",
        str(result.pairs_skipped),
        "[green]✓[/]" if not result.pairs_skipped else "[yellow]⚠[/]",
    )
    console.print(table)

    if result.error:
        console.print(f"[red]Error:[/] {escape(result.error.message)}")


# ─── Entry point (for python -m qbank.cli) ────────────────────────────────────


if __name__ == "__main__":
    cli()
