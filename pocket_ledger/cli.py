"""
CLI interface for Pocket Ledger.

Type expenses in plain language, watch the model's reply stream in,
and browse the ledger.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from pocket_ledger.config import get_settings, validate_all_settings
from pocket_ledger.llm import InvalidModelFileError, import_model_file
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.models.results import AssistantStatus, StatusKind
from pocket_ledger.orchestrator import LedgerAssistant, create_app_components
from pocket_ledger.services.preferences import PreferencesStore
from pocket_ledger.services.storage import SQLiteDatabase, SQLiteLedgerStorage, StorageError

app = typer.Typer(help="Pocket Ledger: an on-device expense ledger you talk to.")
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1

EXIT_WORDS = {"exit", "quit", ":q"}


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Pocket Ledger CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Pocket Ledger - Use --help to see available commands")


def _resolve_model_path(model: Optional[str]) -> str:
    """--model, then LEDGER_LLM_MODEL_PATH, then the last imported model."""
    settings = get_settings()
    path = model or settings.engine.model_path
    if not path:
        path = PreferencesStore(settings.storage.preferences_path).saved_model_path
    if not path:
        console.print(
            "[red]No model selected.[/] Run `pocket-ledger import-model FILE` "
            "or pass --model."
        )
        raise typer.Exit(code=EXIT_CODE_FAIL)
    return path


def _print_status(status: AssistantStatus) -> None:
    if status.kind == StatusKind.SHOW_ERROR:
        console.print(f"[red]{status.message}[/]")
    elif status.kind == StatusKind.SHOW_MESSAGE:
        console.print(f"[green]{status.message}[/]")


def _entries_table(entries: list[LedgerEntry], currency: str) -> Table:
    table = Table(title="Ledger")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Item")
    table.add_column("Category")
    table.add_column("Qty", justify="right")
    table.add_column("Unit price", justify="right")
    table.add_column(f"Total ({currency})", justify="right", style="bold")
    table.add_column("Created", style="dim")
    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.item_name,
            entry.category,
            str(entry.quantity),
            str(entry.price_per_unit),
            str(entry.total_price),
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


async def _start(assistant: LedgerAssistant, model_path: str) -> bool:
    await assistant.refresh_entries()
    with console.status("Loading model..."):
        loaded = await assistant.load_model(model_path)
    if not loaded:
        _print_status(assistant.status)
    else:
        console.print(f"[green]LLM initialized successfully![/] [dim]{model_path}[/]")
    return loaded


async def _run_one(assistant: LedgerAssistant, text: str) -> AssistantStatus:
    outcome = assistant.handle_user_question(text)
    if outcome is None:
        return assistant.status

    with console.status("Thinking..."):
        try:
            status = await outcome
        except asyncio.CancelledError:
            assistant.stop_generation()
            raise

    if assistant.partial_text:
        console.print(f"[dim]{assistant.partial_text}[/]")
    _print_status(status)
    return status


async def _ask(text: str, model_path: str, use_memory: bool) -> int:
    async with create_app_components(use_memory=use_memory) as assistant:
        if not await _start(assistant, model_path):
            return EXIT_CODE_FAIL
        status = await _run_one(assistant, text)
        return EXIT_CODE_FAIL if status.is_error else EXIT_CODE_OK


async def _chat(model_path: str, use_memory: bool) -> None:
    async with create_app_components(use_memory=use_memory) as assistant:
        if not await _start(assistant, model_path):
            return
        currency = get_settings().app.currency_label
        console.print("Type an expense, `list` to see the ledger, or `exit` to leave.")

        while True:
            text = (await asyncio.to_thread(console.input, "[bold]> [/]")).strip()
            if not text:
                continue
            if text.lower() in EXIT_WORDS:
                break
            if text.lower() == "list":
                console.print(_entries_table(assistant.entries, currency))
                continue
            await _run_one(assistant, text)
            console.print(f"[dim]context used: {assistant.used_context_size} tokens[/]")


@app.command()
def ask(
    text: str = typer.Argument(..., help="What you bought, e.g. 'add 4kg mango of 20'"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="GGUF model to use"),
    memory: bool = typer.Option(
        False,
        "--memory",
        help="Keep the ledger in memory only (nothing is written to disk)"
    ),
):
    """Run a single command through the model and exit."""
    model_path = _resolve_model_path(model)
    raise typer.Exit(code=asyncio.run(_ask(text, model_path, memory)))


@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="GGUF model to use"),
    memory: bool = typer.Option(
        False,
        "--memory",
        help="Keep the ledger in memory only (nothing is written to disk)"
    ),
):
    """Interactive session: one command per line."""
    model_path = _resolve_model_path(model)
    try:
        asyncio.run(_chat(model_path, memory))
    except KeyboardInterrupt:
        console.print("\nBye.")


@app.command()
def entries(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only this category"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Item name contains"),
    min_total: Optional[str] = typer.Option(None, "--min-total", help="Total at least this"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most N entries"),
):
    """Show the stored ledger, newest first."""
    settings = get_settings()

    threshold = None
    if min_total is not None:
        try:
            threshold = Decimal(min_total)
        except InvalidOperation:
            console.print(f"[red]Not a number:[/] {min_total}")
            raise typer.Exit(code=EXIT_CODE_FAIL)

    async def load() -> list[LedgerEntry]:
        database = SQLiteDatabase(settings.storage.database_path)
        try:
            return await SQLiteLedgerStorage(database).list_entries(
                category=category,
                name_query=search,
                min_total=threshold,
                limit=limit,
            )
        finally:
            database.close()

    try:
        rows = asyncio.run(load())
    except StorageError as e:
        console.print(f"[red]Error reading ledger:[/] {e}")
        raise typer.Exit(code=EXIT_CODE_FAIL)

    if not rows:
        console.print("[dim]No entries found.[/]")
        return
    console.print(_entries_table(rows, settings.app.currency_label))


@app.command("import-model")
def import_model(
    file: str = typer.Argument(..., help="Path to a .gguf model file"),
):
    """Copy a GGUF model into the models directory and select it."""
    settings = get_settings()
    try:
        with console.status("Copying model..."):
            destination = import_model_file(file, settings.storage.models_dir)
    except InvalidModelFileError as e:
        console.print(f"[red]Invalid file:[/] {e}")
        raise typer.Exit(code=EXIT_CODE_FAIL)
    except OSError as e:
        console.print(f"[red]Could not copy model:[/] {e}")
        raise typer.Exit(code=EXIT_CODE_FAIL)

    PreferencesStore(settings.storage.preferences_path).save_model_path(str(destination))
    console.print(f"[green]✓[/] Model imported: {destination}")


@app.command("check-config")
def check_config():
    """Check that every settings section loads."""
    results = validate_all_settings()
    table = Table(title="Configuration")
    table.add_column("Section")
    table.add_column("Status")
    table.add_column("Detail")

    failed = False
    for section in ("engine", "storage", "app"):
        ok = bool(results.get(section))
        failed = failed or not ok
        table.add_row(
            section,
            "[green]✓[/]" if ok else "[red]✗[/]",
            str(results.get(f"{section}_error", "")),
        )
    console.print(table)

    if failed:
        raise typer.Exit(code=EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
