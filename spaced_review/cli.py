"""
spaced-review CLI

Terminal front end for the review engine.

Usage:
    spaced-review add "ciao" "hello" --category vocabulary
    spaced-review schedule            # Due queue and suggested sessions
    spaced-review study --user me     # Interactive review session
    spaced-review stats --user me     # Performance summary
    spaced-review master ITEM_ID      # Mark an item as mastered
    spaced-review reset ITEM_ID       # Start an item over

The storage backend comes from settings (STORE_BACKEND, DATA_DIR, ...).
"""

from __future__ import annotations

import sys
import time
import uuid
from typing import Annotated, NoReturn

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from spaced_review.analytics.performance import summarize
from spaced_review.config import get_settings
from spaced_review.core.errors import ReviewEngineError
from spaced_review.core.models import ReviewableItem, StrategyKind, utc_now
from spaced_review.scheduling.due_queue import build_review_schedule, deck_stats, recommend_sessions
from spaced_review.session.controller import ReviewSessionController
from spaced_review.stores import ItemSnapshot, StoreBundle, build_stores

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="spaced-review",
    help="Spaced-repetition review engine for vocabulary cards and questions",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

LEVEL_CHOICES = {"0": "again", "1": "hard", "2": "easy", "a": "again", "h": "hard", "e": "easy"}


def get_stores() -> StoreBundle:
    return build_stores(get_settings())


def fail(error: ReviewEngineError) -> NoReturn:
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(1)


# =============================================================================
# Content Commands
# =============================================================================


@app.command()
def add(
    front: Annotated[str, typer.Argument(help="Prompt side (e.g. the Italian word)")],
    back: Annotated[str, typer.Argument(help="Answer side")],
    category: Annotated[
        str, typer.Option("--category", "-c", help="Content type tag")
    ] = "vocabulary",
    strategy: Annotated[
        StrategyKind, typer.Option("--strategy", "-s", help="Scheduling strategy")
    ] = StrategyKind.LEVEL,
) -> None:
    """Add a new item. It is due immediately."""
    item = ReviewableItem(
        id=uuid.uuid4().hex[:12],
        content={"front": front, "back": back},
        category=category,
        strategy=strategy,
        next_review_date=utc_now(),
    )
    try:
        get_stores().items.upsert_item(item)
    except ReviewEngineError as e:
        fail(e)
    console.print(f"[green]Added {item.id}[/green] ({strategy.value}, {category})")


@app.command()
def master(item_id: Annotated[str, typer.Argument(help="Item to mark as mastered")]) -> None:
    """Mark an item as mastered."""
    controller = ReviewSessionController(get_stores(), user_id="cli")
    try:
        item = controller.mark_item_mastered(item_id)
    except ReviewEngineError as e:
        fail(e)
    console.print(f"[green]{item.id} marked as mastered[/green]")


@app.command()
def reset(
    item_id: Annotated[str, typer.Argument(help="Item to start over")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Reset an item's scheduling state so it is due now."""
    if not yes and not Confirm.ask(f"Reset review state for {item_id}?", default=False):
        raise typer.Exit(0)

    controller = ReviewSessionController(get_stores(), user_id="cli")
    try:
        controller.reset_item(item_id)
    except ReviewEngineError as e:
        fail(e)
    console.print(f"[green]{item_id} reset[/green]")


# =============================================================================
# Dashboard Commands
# =============================================================================


@app.command()
def schedule() -> None:
    """Show the due queue and suggested study sessions."""
    stores = get_stores()
    if not isinstance(stores.items, ItemSnapshot):
        console.print("[yellow]This store cannot list all items.[/yellow]")
        raise typer.Exit(1)

    now = utc_now()
    try:
        items = stores.items.all_items()
    except ReviewEngineError as e:
        fail(e)

    result = build_review_schedule(items, now)
    deck = deck_stats(items, now)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Items", str(deck.total))
    table.add_row("Mastered", str(deck.mastered))
    table.add_row("Due today", str(result.due_today))
    table.add_row("Due this week", str(result.due_this_week))
    table.add_row("Due next week", str(result.due_next_week))
    console.print(Panel(table, title="[bold]Review Schedule[/bold]", border_style="cyan"))

    if result.due_by_date:
        by_date = Table()
        by_date.add_column("Date")
        by_date.add_column("Due", justify="right")
        for day, count in list(result.due_by_date.items())[:14]:
            by_date.add_row(day, str(count))
        console.print(by_date)

    for session in recommend_sessions(items, now):
        color = "red" if session.priority == "high" else "yellow"
        console.print(
            f"[{color}]{session.title}[/{color}]: {session.description} "
            f"(~{session.duration_minutes} min)"
        )


@app.command()
def stats(
    user: Annotated[str, typer.Option("--user", "-u", help="Learner id")] = "default",
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Only this category")
    ] = None,
) -> None:
    """Show review performance and learner metrics."""
    stores = get_stores()
    try:
        attempts = stores.attempts.list_attempts(user)
        metrics = stores.metrics.get_user_metrics(user)
    except ReviewEngineError as e:
        fail(e)

    performance = summarize(attempts, category=category)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Reviews", str(performance.total_reviews))
    table.add_row("Correct", str(performance.correct_reviews))
    table.add_row("Efficiency", f"{performance.efficiency * 100:.0f}%")
    table.add_row("Review streak", f"{performance.streak_days} days")
    table.add_row("Session streak", f"{metrics.streak} (best {metrics.longest_streak})")
    console.print(Panel(table, title=f"[bold]Stats for {user}[/bold]", border_style="cyan"))

    if performance.reviews_by_category:
        by_category = Table()
        by_category.add_column("Category")
        by_category.add_column("Reviews", justify="right")
        by_category.add_column("Accuracy", justify="right")
        for name, counts in sorted(performance.reviews_by_category.items()):
            by_category.add_row(name, str(counts.total), f"{counts.accuracy * 100:.0f}%")
        console.print(by_category)


# =============================================================================
# Study Command
# =============================================================================


def _ask_signal(item: ReviewableItem) -> str | int | None:
    """Prompt for a rating. Returns None to skip, raises typer.Abort to quit."""
    if item.strategy is StrategyKind.LEVEL:
        answer = Prompt.ask(
            "Rating [dim](0/a=again, 1/h=hard, 2/e=easy, s=skip, q=quit)[/dim]",
            choices=[*LEVEL_CHOICES, "s", "q"],
            show_choices=False,
        )
    else:
        answer = Prompt.ask(
            "Quality [dim](0=again .. 4=easy, s=skip, q=quit)[/dim]",
            choices=["0", "1", "2", "3", "4", "s", "q"],
            show_choices=False,
        )
    if answer == "q":
        raise typer.Abort()
    if answer == "s":
        return None
    if item.strategy is StrategyKind.LEVEL:
        return LEVEL_CHOICES[answer]
    return int(answer)


@app.command()
def study(
    user: Annotated[str, typer.Option("--user", "-u", help="Learner id")] = "default",
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Number of items to review")
    ] = None,
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Only review this category")
    ] = None,
) -> None:
    """Run an interactive review session."""
    controller = ReviewSessionController(get_stores(), user_id=user)
    try:
        queue = controller.start(limit=limit, category=category)
    except ReviewEngineError as e:
        fail(e)

    if not queue:
        console.print("[green]Nothing due. All reviews complete![/green]")
        raise typer.Exit(0)

    console.print(f"[bold]{len(queue)} items due[/bold]\n")

    try:
        while controller.current is not None:
            item = controller.current
            console.print(Panel(str(item.content.get("front", item.id)), border_style="cyan"))
            started = time.monotonic()
            Prompt.ask("[dim]Press Enter to reveal[/dim]", default="", show_default=False)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            console.print(f"[bold]{item.content.get('back', '')}[/bold]")

            signal = _ask_signal(item)
            if signal is None:
                controller.skip()
                continue

            outcome = controller.submit(signal, time_spent_ms=elapsed_ms)
            saved = "" if outcome.persisted else " [yellow](not saved)[/yellow]"
            console.print(
                f"[dim]{outcome.status.value}: next review in "
                f"{outcome.item.interval_days} days[/dim]{saved}\n"
            )
    except typer.Abort:
        pass

    summary = controller.finish()
    console.print(
        Panel(
            f"{summary.correct}/{summary.answered} correct "
            f"({summary.accuracy * 100:.0f}%), {summary.skipped} skipped",
            title="[bold]Session Complete[/bold]",
            border_style="green",
        )
    )
    if summary.metrics is not None:
        console.print(f"Streak: {summary.metrics.streak} days")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB")

    app()


if __name__ == "__main__":
    run()
