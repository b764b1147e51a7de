import asyncio
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from genbatch.cli.callbacks import (
    load_file_callback,
    order_by_callback,
    preset_callback,
    provider_callback,
    status_callback,
)
from genbatch.cli.completions import complete_order_by, complete_status
from genbatch.config import EngineSettings
from genbatch.credentials import CredentialPool, match_platforms
from genbatch.db.store import JobStore, SqlCredentialLibrary
from genbatch.engine import BatchEngine
from genbatch.exceptions import ConfigurationError, RowParseError
from genbatch.models import JobRecord
from genbatch.providers import BaseProvider
from genbatch.rows import row_from_record, serialize_rows
from genbatch.status import display_label, display_progress
from genbatch.utils.logging import setup_logging

app = typer.Typer(no_args_is_help=True)
keys_app = typer.Typer(no_args_is_help=True, help="Manage the credential library")
app.add_typer(keys_app, name="keys")

_LABEL_COLORS = {
    "Waiting": "white",
    "Generating": "yellow",
    "Downloading": "cyan",
    "Succeeded": "green",
    "Failed": "red",
}


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("-v", "--verbose", help="Show engine logs while running")
    ] = False,
    json_logs: Annotated[bool, typer.Option(help="Render engine logs as JSON lines")] = False,
):
    """Run batches of generation jobs against rate-limited providers"""
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING, json_logs=json_logs)


def print_jobs(records: list[JobRecord], title: str = "Jobs"):
    table = Table(
        "ID",
        "Status",
        "Progress",
        "Attempts",
        "Local Path",
        "Error",
        "Updated At",
        title=title,
    )
    for record in records:
        label = display_label(record)
        color = _LABEL_COLORS[label]
        table.add_row(
            record.id,
            f"[{color}]{label}[/{color}]",
            f"{display_progress(record)}%",
            f"{record.attempts}/{record.max_attempts}",
            record.local_path or "",
            f"{record.error_code}: {record.error_message}" if record.error_code else "",
            datetime.strftime(record.updated_at, "%Y-%m-%d %H:%M:%S"),
        )
    console = Console()
    console.print(table)


def print_summary(records: list[JobRecord]):
    counts = Counter(display_label(record) for record in records)
    values = "\n".join(
        f"{label}: [{color}]{counts.get(label, 0)}[/{color}]"
        for label, color in _LABEL_COLORS.items()
    )
    console = Console()
    console.print(Panel(values, title="Summary", expand=False, highlight=True))


def load_settings(**overrides) -> EngineSettings:
    try:
        return EngineSettings.from_env(**overrides)
    except ConfigurationError as error:
        typer.echo(str(error))
        raise typer.Exit(1) from error


def build_engine(
    *,
    provider: BaseProvider,
    settings: EngineSettings,
    store: JobStore,
    preset: dict | None = None,
) -> BatchEngine:
    credential_pool = CredentialPool(
        match_platforms(*settings.platforms),
        env_var=settings.api_key_env_var,
        settings_api_key=settings.api_key,
        library=SqlCredentialLibrary(),
    )
    try:
        credential_pool.init()
    except ConfigurationError as error:
        typer.echo(str(error))
        raise typer.Exit(1) from error
    engine = BatchEngine(
        provider=provider,
        credential_pool=credential_pool,
        settings=settings,
        preset=preset,
        listener=store,
    )
    engine.restore(store.load())
    return engine


ProviderOption = Annotated[
    str,
    typer.Option(
        "-p",
        "--provider",
        help="Provider import path, e.g. my_package.providers:VideoProvider",
        callback=provider_callback,
    ),
]
ConcurrencyOption = Annotated[
    int | None,
    typer.Option(
        min=1,
        help="Max concurrent submissions, defaults to GENBATCH_CONCURRENCY or 5",
        rich_help_panel="Engine",
    ),
]
MaxAttemptsOption = Annotated[
    int | None,
    typer.Option(
        min=1,
        help="Submission attempts per job, defaults to GENBATCH_MAX_ATTEMPTS or 3",
        rich_help_panel="Engine",
    ),
]
StorageDirOption = Annotated[
    Path | None,
    typer.Option(
        help="Directory where artifacts are downloaded, defaults to GENBATCH_STORAGE_DIR",
        rich_help_panel="Engine",
    ),
]


@app.command(name="run")
def run_batch(
    csv_path: Annotated[
        Path,
        typer.Argument(help="Path to the bulk CSV file", callback=load_file_callback),
    ],
    provider: ProviderOption,
    preset: Annotated[
        Path | None,
        typer.Option(
            help="Optional JSON preset whose default_* keys fill blank row fields",
            callback=preset_callback,
        ),
    ] = None,
    concurrency: ConcurrencyOption = None,
    max_attempts: MaxAttemptsOption = None,
    storage_dir: StorageDirOption = None,
):
    """Import a CSV batch, then submit, poll and download every job"""
    settings = load_settings(
        concurrency=concurrency, max_attempts=max_attempts, storage_dir=storage_dir
    )
    store = JobStore()
    engine = build_engine(provider=provider, settings=settings, store=store, preset=preset)
    try:
        records = engine.import_batch(csv_path)
    except RowParseError as error:
        typer.echo(f"Invalid CSV file: {error}")
        raise typer.Exit(1) from error
    if not records:
        typer.echo(f"No jobs found in file: {csv_path.as_posix()}")
        raise typer.Exit(1)
    engine.enqueue(records)
    snapshot = asyncio.run(engine.run())
    print_jobs(snapshot)
    print_summary(snapshot)


@app.command(name="resume")
def resume_batch(
    provider: ProviderOption,
    concurrency: ConcurrencyOption = None,
    max_attempts: MaxAttemptsOption = None,
    storage_dir: StorageDirOption = None,
):
    """Resume stored jobs: retry submittable ones, poll running ones, download results"""
    settings = load_settings(
        concurrency=concurrency, max_attempts=max_attempts, storage_dir=storage_dir
    )
    store = JobStore()
    engine = build_engine(provider=provider, settings=settings, store=store)
    if not engine.snapshot():
        typer.echo("No stored jobs to resume")
        raise typer.Exit(1)
    snapshot = asyncio.run(engine.run())
    print_jobs(snapshot)
    print_summary(snapshot)


@app.command(name="list")
def list_jobs(
    status: Annotated[
        str | None,
        typer.Option(
            "-s",
            "--status",
            help="Only list jobs in this status",
            callback=status_callback,
            autocompletion=complete_status,
        ),
    ] = None,
    order_by: Annotated[
        str,
        typer.Option(
            "-o",
            "--order-by",
            help="The field to order by",
            rich_help_panel="Ordering",
            callback=order_by_callback,
            autocompletion=complete_order_by,
        ),
    ] = "created_at",
    ascending: Annotated[
        bool,
        typer.Option(
            "-a/-d",
            "--ascending/--descending",
            help="Whether to order in ascending order instead of descending",
            rich_help_panel="Ordering",
        ),
    ] = True,
):
    """List stored jobs"""
    records = JobStore().load(status=status, order_by=order_by, ascending=ascending)
    print_jobs(records)


@app.command(name="export")
def export_jobs(
    output: Annotated[Path, typer.Argument(help="Path of the CSV file to write")],
    status: Annotated[
        str | None,
        typer.Option(
            "-s",
            "--status",
            help="Only export jobs in this status",
            callback=status_callback,
            autocompletion=complete_status,
        ),
    ] = None,
):
    """Export stored job inputs to the bulk CSV format"""
    records = JobStore().load(status=status)
    output.parent.mkdir(parents=True, exist_ok=True)
    content = serialize_rows(row_from_record(record) for record in records)
    output.write_text(content, encoding="utf-8")
    print(f"Exported [green]{len(records)}[/green] jobs to {output.as_posix()}")


@app.command(name="delete")
def delete_job(job_id: Annotated[str, typer.Argument(help="The id of the job")]):
    """Delete a stored job"""
    if not JobStore().delete(job_id):
        typer.echo(f"Job with id: {job_id} not found")
        raise typer.Exit(1)
    print(f"Job with id: [green]{job_id}[/green] deleted")


@keys_app.command(name="add")
def add_key(
    name: Annotated[str, typer.Argument(help="Unique name of the credential")],
    secret: Annotated[
        str, typer.Option(prompt=True, hide_input=True, help="The provider API key")
    ],
    platform: Annotated[
        str, typer.Option(help="Platform tag used to select credentials, e.g. kling")
    ] = "",
):
    """Add or replace a credential in the library"""
    if not secret.strip():
        raise typer.BadParameter(message="secret cannot be empty", param_hint="--secret")
    entry = SqlCredentialLibrary().add(name=name, secret=secret.strip(), platform=platform)
    print(f"Credential [green]{entry.name}[/green] saved")


@keys_app.command(name="list")
def list_keys():
    """List credentials in the library, secrets masked"""
    table = Table("Name", "Platform", "Secret", "Last Used", title="Credentials")
    for entry in SqlCredentialLibrary().list_credentials():
        table.add_row(
            entry.name,
            entry.platform,
            f"{entry.secret[:4]}***",
            datetime.strftime(entry.last_used, "%Y-%m-%d %H:%M:%S") if entry.last_used else "",
        )
    console = Console()
    console.print(table)


@keys_app.command(name="delete")
def delete_key(name: Annotated[str, typer.Argument(help="The name of the credential")]):
    """Delete a credential from the library"""
    if not SqlCredentialLibrary().delete(name):
        typer.echo(f"Credential with name: {name} not found")
        raise typer.Exit(1)
    print(f"Credential [green]{name}[/green] deleted")
