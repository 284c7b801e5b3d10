"""CLI: atomic session inspect|check|export"""

import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from atomic_bot import serializer
from atomic_bot.errors import MalformedSessionError
from atomic_bot.sinks import FileSink

console = Console()


def _resolve_blob(blob: Optional[str], file: Optional[Path]) -> str:
    if blob:
        return blob
    if file:
        stored = FileSink(file).read()
        if stored:
            return stored
        raise click.ClickException(f"No session stored in {file}")
    from atomic_bot.cli.main import _load_settings
    stored = _load_settings().baileys_session
    if not stored:
        raise click.ClickException("No blob given and BAILEYS_SESSION is not set")
    return stored


@click.group()
def session():
    """Session blob tools."""


@session.command("inspect")
@click.argument("blob", required=False)
@click.option("-f", "--file", type=click.Path(path_type=Path), default=None, help="Read the blob from a file")
@click.option("--json-output", "--json", is_flag=True)
def session_inspect(blob: Optional[str], file: Optional[Path], json_output: bool):
    """Decode a session blob and summarize it. Key material is never printed."""
    try:
        creds, keys = serializer.decode(_resolve_blob(blob, file))
    except MalformedSessionError as e:
        console.print(f"[red]Malformed session:[/red] {e}")
        raise SystemExit(1)

    summary = {
        "registered": bool(creds and creds.registered),
        "account": creds.account_id if creds else None,
        "keys": {key_type: keys.count(key_type) for key_type in keys.key_types()},
    }
    if json_output:
        click.echo(json.dumps(summary, indent=2))
        return

    state = "[green]registered[/green]" if summary["registered"] else "[yellow]not registered[/yellow]"
    console.print(f"Session: {state} account={summary['account'] or '-'}")
    table = Table(title=f"Keys ({keys.count()} total)")
    table.add_column("Type", style="bold")
    table.add_column("Count", justify="right")
    for key_type, count in summary["keys"].items():
        table.add_row(key_type, str(count))
    console.print(table)


@session.command("check")
@click.argument("blob", required=False)
@click.option("-f", "--file", type=click.Path(path_type=Path), default=None)
def session_check(blob: Optional[str], file: Optional[Path]):
    """Exit 0 if the blob decodes and is registered, 1 otherwise."""
    try:
        creds, _ = serializer.decode(_resolve_blob(blob, file))
    except MalformedSessionError as e:
        console.print(f"[red]Malformed session:[/red] {e}")
        raise SystemExit(1)
    if not creds or not creds.registered:
        console.print("[yellow]Session decodes but is not registered; pairing will be required.[/yellow]")
        raise SystemExit(1)
    console.print("[green]Session OK[/green]")


@session.command("export")
@click.argument("file", type=click.Path(path_type=Path))
def session_export(file: Path):
    """Print the blob saved by SESSION_FILE, ready to paste into BAILEYS_SESSION."""
    stored = FileSink(file).read()
    if not stored:
        console.print(f"[red]No session stored in {file}[/red]")
        raise SystemExit(1)
    click.echo(stored)
