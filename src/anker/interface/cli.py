"""anker CLI: review sessions, due queues, review history and parameter optimization."""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError as PydanticValidationError

from anker.application.config import AppConfig, resolve_config
from anker.domain.errors import (
    AnkerError,
    CardNotFoundError,
    ExtensionError,
    InsufficientDataError,
    NoDueCardsError,
    PersistenceError,
)
from anker.domain.models import Rating

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="anker: spaced-repetition reviews for Markdown flashcards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

history_app = typer.Typer(help="Inspect or reset the review history.", no_args_is_help=True)
app.add_typer(history_app, name="history")

ids_app = typer.Typer(help="Manage stable card IDs.", no_args_is_help=True)
app.add_typer(ids_app, name="ids")

config_app = typer.Typer(help="Manage anker configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

VaultOption = Annotated[
    Path | None,
    typer.Option("--vault", help="Vault root. Defaults to 'vault_root' in config, or CWD."),
]

HorizonOption = Annotated[
    str | None,
    typer.Option(
        "--due-horizon",
        help=(
            "'instant' keeps a rated card in the session only if it is due again right"
            " away, so learning steps (e.g. 1m) end its session. 'end_of_day' keeps"
            " cards due later today for same-day relearning. Defaults to config."
        ),
    ),
]

RATING_KEYS = {
    "1": Rating.AGAIN,
    "2": Rating.HARD,
    "3": Rating.GOOD,
    "4": Rating.EASY,
}


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for anker."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)


def _resolve(vault: Path | None = None, **overrides: Any) -> AppConfig:
    try:
        return resolve_config({"vault_root": vault, **overrides})
    except PydanticValidationError as e:
        raise _fail(f"Invalid configuration: {e}")


def _fail(message: str, code: int = 1) -> typer.Exit:
    typer.secho(message, fg="red", err=True)
    return typer.Exit(code)


# ---------------------------------------------------------------------------
# Queue & review
# ---------------------------------------------------------------------------


@app.command()
def due(
    deck: Annotated[str, typer.Argument(help="Deck folder, relative to the vault.")] = "",
    vault: VaultOption = None,
    due_horizon: HorizonOption = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List cards due now in a deck, in review order."""
    from anker.application.factory import get_card_store
    from anker.application.queue_builder import DueQueueBuilder

    config = _resolve(vault, due_horizon=due_horizon)
    builder = DueQueueBuilder(get_card_store(config))
    queue = asyncio.run(builder.build(deck, datetime.now(timezone.utc), config.due_horizon))

    if json_output:
        typer.echo(
            json.dumps(
                [{"id": q.card_id, "key": q.key, "sides": q.side_count} for q in queue], indent=2
            )
        )
        return

    if not queue:
        typer.secho("No cards due.", fg="yellow")
        return
    for item in queue:
        typer.echo(f"{item.key}  ({item.card_id}, {item.side_count} sides)")
    typer.secho(f"{len(queue)} cards due.", fg="green")


@app.command()
def review(
    deck: Annotated[str, typer.Argument(help="Deck folder, relative to the vault.")] = "",
    vault: VaultOption = None,
    due_horizon: HorizonOption = None,
):
    """[bold green]Review[/bold green] the due cards of a deck interactively."""
    from anker.application.extensions import RENDER_SIDE, ExtensionContext
    from anker.application.factory import (
        get_card_store,
        get_extension_registry,
        get_session_manager,
    )

    config = _resolve(vault, due_horizon=due_horizon)
    manager = get_session_manager(config)
    store = get_card_store(config)
    registry = get_extension_registry()

    async def render(text: str, context: ExtensionContext) -> str:
        try:
            return await registry.invoke(RENDER_SIDE, text, context)
        except ExtensionError as e:
            logger.warning(f"{e}; showing raw text")
            return text

    async def run() -> None:
        try:
            await manager.start(deck)
        except NoDueCardsError as e:
            typer.secho(str(e), fg="yellow")
            return
        now = datetime.now(timezone.utc)

        while manager.is_session_active():
            snap = manager.get_session()
            context = ExtensionContext(card_id=snap.current_card_id, deck_scope=deck, now=now)
            try:
                sides = await store.card_sides(snap.current_card_id)
            except CardNotFoundError as e:
                typer.secho(f"{e}; skipped.", fg="yellow")
                manager.skip()
                continue

            typer.echo("")
            typer.secho(f"[{snap.progress_text}]", fg="cyan")
            for text in sides[: snap.current_side + 1]:
                typer.echo(await render(text, context))
                typer.echo("---")

            if not manager.is_last_side():
                answer = typer.prompt("Enter to reveal, q to quit", default="", show_default=False)
                if answer.strip().lower() == "q":
                    break
                manager.advance_side()
                continue

            try:
                labels = await manager.next_intervals()
            except CardNotFoundError as e:
                typer.secho(f"{e}; skipped.", fg="yellow")
                manager.skip()
                continue
            choices = "  ".join(f"{int(r)}={r.name.title()} ({labels[r]})" for r in Rating)
            answer = typer.prompt(f"{choices}  q=quit").strip().lower()
            if answer == "q":
                break
            if answer not in RATING_KEYS:
                typer.secho("Please answer 1-4 or q.", fg="yellow")
                continue

            try:
                outcome = await manager.rate(RATING_KEYS[answer])
            except CardNotFoundError as e:
                typer.secho(f"{e}; skipped.", fg="yellow")
                continue
            except PersistenceError as e:
                typer.secho(f"Could not save rating: {e}", fg="red")
                continue

            if not outcome.audit_recorded:
                typer.secho(
                    f"Rating saved but not recorded in review history: {outcome.audit_error}",
                    fg="yellow",
                )

        snap = manager.get_session()
        if snap is not None:
            typer.secho(f"Session finished: {snap.progress_text}", fg="green")
        manager.end()

    asyncio.run(run())


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------


@app.command()
def optimize(
    vault: VaultOption = None,
    short_term: Annotated[
        bool | None,
        typer.Option(
            "--short-term/--no-short-term",
            help="Fit 21 weights using same-day reviews, or 19 without. Defaults to config.",
        ),
    ] = None,
):
    """Fit FSRS weights from the review history and print them as JSON."""
    from anker.application.factory import get_optimizer, get_review_log

    config = _resolve(vault)
    enable_short_term = config.enable_short_term if short_term is None else short_term

    def on_progress(current: int, total: int) -> None:
        typer.echo(f"Optimizing... {current}/{total}", err=True)

    async def run():
        entries = await get_review_log(config).read_all()
        return await get_optimizer().optimize(entries, enable_short_term, on_progress)

    try:
        result = asyncio.run(run())
    except InsufficientDataError as e:
        raise _fail(str(e))
    except AnkerError as e:
        raise _fail(f"Optimization failed: {e}")

    typer.echo(
        json.dumps(
            {
                "weights": [round(w, 4) for w in result.weights],
                "cards_used": result.cards_used,
                "reviews_used": result.reviews_used,
            },
            indent=2,
        )
    )


# ---------------------------------------------------------------------------
# History subgroup
# ---------------------------------------------------------------------------


@history_app.command("stats")
def history_stats(vault: VaultOption = None):
    """Show how much review history has been collected."""
    from anker.application.factory import get_card_store, get_review_log

    config = _resolve(vault)

    async def run():
        total_cards = len(await get_card_store(config).list_cards(""))
        return await get_review_log(config).stats(total_cards)

    stats = asyncio.run(run())
    typer.echo(f"Cards with history: {stats.cards_with_history}/{stats.total_cards}")
    typer.echo(f"Total reviews: {stats.total_reviews}")
    if stats.can_optimize:
        typer.secho("Enough data to optimize.", fg="green")
    else:
        typer.secho("Not enough data to optimize yet.", fg="yellow")


@history_app.command("reset")
def history_reset(
    vault: VaultOption = None,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Delete all review history."""
    from anker.application.factory import get_review_log

    config = _resolve(vault)
    if not force:
        typer.confirm(f"Delete all review history in {config.history_file}?", abort=True)

    try:
        count = asyncio.run(get_review_log(config).reset())
    except PersistenceError as e:
        raise _fail(str(e))
    typer.secho(f"Removed {count} review entries.", fg="green")


# ---------------------------------------------------------------------------
# IDs subgroup
# ---------------------------------------------------------------------------


@ids_app.command("assign")
def ids_assign(
    vault: VaultOption = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Preview without writing.")] = False,
):
    """Give every flashcard note without an `_id` a stable one."""
    from anker.application.id_service import assign_card_ids

    config = _resolve(vault)
    count = assign_card_ids(config.vault_root, dry_run=dry_run)
    verb = "Would assign" if dry_run else "Assigned"
    typer.secho(f"{verb} {count} IDs.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


if __name__ == "__main__":
    app()
