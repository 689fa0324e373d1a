"""Command line interface for the Chartdex project."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from chartdex.config import (
    ChartdexConfig,
    ConfigError,
    ConfigManager,
    flatten_for_env,
    parse_assignments,
)
from chartdex.index.errors import (
    ChartIndexError,
    InvalidRequestError,
    NotFoundError,
    PartialRenameError,
    RenameCollisionError,
    UploadIOError,
)
from chartdex.index.models import AssetIndex, DateEntry
from chartdex.index.service import ChartIndexService
from chartdex.index.timeframes import Timeframe
from chartdex.logs import configure_logging
from chartdex.notes import NoteRepository, NoteStoreError, note_key
from chartdex.watch import RescanResult, WatchService

console = Console()

# First match wins, so subclasses come before ChartIndexError.
_ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (ConfigError, "config_invalid"),
    (NotFoundError, "not_found"),
    (RenameCollisionError, "rename_collision"),
    (UploadIOError, "upload_failed"),
    (PartialRenameError, "partial_rename"),
    (InvalidRequestError, "invalid_request"),
    (NoteStoreError, "note_store_error"),
    (ChartIndexError, "path_error"),
)
_DETAIL_ATTRIBUTES = ("asset", "date_key", "written", "renamed", "total")


@dataclass(slots=True)
class _Session:
    """Options given to the ``chartdex`` group, shared by every subcommand."""

    config_path: Optional[Path] = None
    overrides: dict[str, Any] = field(default_factory=dict)


def _session() -> _Session:
    ctx = click.get_current_context(silent=True)
    session = ctx.find_object(_Session) if ctx is not None else None
    return session if session is not None else _Session()


def _fail(exc: Exception, *, json_output: bool) -> NoReturn:
    """Report ``exc`` and end the command.

    JSON mode prints ``{"error": {"code", "message", "details"}}`` and exits
    with status 1; otherwise the message is raised as a ``ClickException``.
    """

    if not json_output:
        raise click.ClickException(str(exc)) from exc

    code = next((code for kind, code in _ERROR_CODES if isinstance(exc, kind)), "internal_error")
    error: dict[str, Any] = {"code": code, "message": str(exc)}
    details = {name: getattr(exc, name) for name in _DETAIL_ATTRIBUTES if hasattr(exc, name)}
    if details:
        error["details"] = details
    console.print_json(data={"error": error})
    raise SystemExit(1)


def _manager() -> ConfigManager:
    return ConfigManager(_session().config_path)


def _load_config() -> ChartdexConfig:
    """Load configuration with the group's ``--set`` overrides and apply its logging section."""

    config = _manager().load(cli_overrides=_session().overrides)
    configure_logging(config.logging)
    return config


def _open_service(*, json_output: bool) -> ChartIndexService:
    """Load configuration and build the index service, exiting on failure."""

    try:
        return ChartIndexService.from_config(_load_config())
    except (ConfigError, ChartIndexError) as exc:
        _fail(exc, json_output=json_output)


def _timeframe_marks(entry: DateEntry, timeframes: list[Timeframe]) -> list[str]:
    return ["[green]✓[/green]" if tf in entry.images else "[dim]-[/dim]" for tf in timeframes]


def _entries_table(asset_index: AssetIndex, timeframes: list[Timeframe]) -> Table:
    table = Table(title=f"{asset_index.asset} ({len(asset_index)} entries)")
    table.add_column("Date key")
    table.add_column("Date")
    table.add_column("Seq", justify="right")
    for timeframe in timeframes:
        table.add_column(timeframe.value, justify="center")
    for entry in asset_index:
        table.add_row(
            entry.date_key,
            entry.date,
            str(entry.sequence),
            *_timeframe_marks(entry, timeframes),
        )
    return table


def _parse_file_option(value: str) -> tuple[str, Path]:
    timeframe, sep, raw_path = value.partition("=")
    if not sep or not timeframe.strip() or not raw_path.strip():
        raise click.BadParameter(f"Expected TIMEFRAME=PATH, got {value!r}.", param_hint="--file")
    return timeframe.strip(), Path(raw_path.strip()).expanduser()


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file to use instead of ~/.chartdex/config.yaml.",
)
@click.option(
    "-s",
    "--set",
    "assignments",
    multiple=True,
    metavar="KEY=VALUE",
    help="Override a setting for this run, e.g. library.base_path=~/charts; repeatable.",
)
@click.version_option(package_name="chartdex")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], assignments: tuple[str, ...]) -> None:
    """Chartdex indexes backtest chart screenshots by asset, date, and timeframe."""

    try:
        overrides = parse_assignments(assignments)
    except ConfigError as exc:
        raise click.BadParameter(str(exc), param_hint="--set") from exc
    ctx.obj = _Session(config_path=config_path, overrides=overrides)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit assets as JSON.")
def assets(json_output: bool) -> None:
    """List configured assets with their entry counts."""

    service = _open_service(json_output=json_output)
    snapshot = service.snapshot

    if json_output:
        console.print_json(
            data={
                "assets": [
                    {"asset": name, "entries": len(snapshot.assets[name])}
                    for name in service.list_assets()
                ],
                "timeframes": [tf.value for tf in service.enabled_timeframes()],
            }
        )
        return

    table = Table(title="Assets")
    table.add_column("Asset")
    table.add_column("Entries", justify="right")
    for name in service.list_assets():
        table.add_row(name, str(len(snapshot.assets[name])))
    console.print(table)


@cli.command("list")
@click.argument("asset")
@click.option("--json", "json_output", is_flag=True, help="Emit date entries as JSON.")
def list_entries(asset: str, json_output: bool) -> None:
    """List the date entries of ASSET ordered by date and sequence."""

    service = _open_service(json_output=json_output)
    try:
        asset_index = service.get_asset_index(asset)
    except ChartIndexError as exc:
        _fail(exc, json_output=json_output)

    if json_output:
        console.print_json(data=asset_index.model_dump(mode="json"))
        return

    if not len(asset_index):
        console.print(f"[yellow]No screenshots indexed for {asset}.[/yellow]")
        return
    console.print(_entries_table(asset_index, service.enabled_timeframes()))


@cli.command()
@click.argument("asset")
@click.argument("date_key")
@click.option("--json", "json_output", is_flag=True, help="Emit the entry as JSON.")
def show(asset: str, date_key: str, json_output: bool) -> None:
    """Show the screenshots and note of one date entry."""

    service = _open_service(json_output=json_output)
    try:
        entry = service.get_entry(asset, date_key)
        note = service.notes.get(note_key(asset, date_key)) if service.notes else None
    except (ChartIndexError, NoteStoreError) as exc:
        _fail(exc, json_output=json_output)

    if json_output:
        console.print_json(
            data={
                "entry": entry.model_dump(mode="json"),
                "note": note.model_dump(mode="json") if note else None,
            }
        )
        return

    table = Table(title=f"{asset} {entry.date_key}")
    table.add_column("Timeframe")
    table.add_column("File")
    for timeframe in entry.timeframes():
        table.add_row(timeframe.value, entry.images[timeframe].filename)
    console.print(table)
    if note is not None:
        if note.title:
            console.print(f"[bold]{note.title}[/bold]")
        console.print(note.note)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit statistics as JSON.")
def stats(json_output: bool) -> None:
    """Show screenshot counts per asset and timeframe."""

    service = _open_service(json_output=json_output)
    index_stats = service.stats()

    if json_output:
        console.print_json(data=index_stats.model_dump(mode="json"))
        return

    timeframes = service.enabled_timeframes()
    table = Table(title=f"{index_stats.total_assets} assets")
    table.add_column("Asset")
    table.add_column("Entries", justify="right")
    for timeframe in timeframes:
        table.add_column(timeframe.value, justify="right")
    for name, asset_stats in index_stats.by_asset.items():
        table.add_row(
            name,
            str(asset_stats.total_entries),
            *(str(asset_stats.by_timeframe.get(tf, 0)) for tf in timeframes),
        )
    table.add_row(
        "[bold]total[/bold]",
        str(sum(item.total_entries for item in index_stats.by_asset.values())),
        *(str(index_stats.by_timeframe.get(tf, 0)) for tf in timeframes),
    )
    console.print(table)


@cli.command()
@click.argument("asset")
@click.argument("date")
@click.option(
    "-f",
    "--file",
    "file_specs",
    multiple=True,
    required=True,
    help="Screenshot as TIMEFRAME=PATH; repeat for each timeframe.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit the upload result as JSON.")
def upload(asset: str, date: str, file_specs: tuple[str, ...], json_output: bool) -> None:
    """Add screenshots for ASSET on DATE as a new date entry."""

    files: dict[str, bytes] = {}
    for file_option in file_specs:
        timeframe, path = _parse_file_option(file_option)
        try:
            files[timeframe] = path.read_bytes()
        except OSError as exc:
            raise click.BadParameter(f"Cannot read {path}: {exc}", param_hint="--file") from exc

    service = _open_service(json_output=json_output)
    try:
        result = service.upload(asset, date, files)
    except ChartIndexError as exc:
        _fail(exc, json_output=json_output)

    if json_output:
        console.print_json(
            data={
                "asset": result.asset,
                "date_key": result.date_key,
                "sequence": result.sequence,
                "files": [path.name for path in result.paths],
            }
        )
        return

    console.print(
        f"[green]Uploaded {len(result.paths)} screenshot(s) to {asset} {result.date_key}.[/green]"
    )


@cli.command()
@click.argument("asset")
@click.argument("date_key")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--json", "json_output", is_flag=True, help="Emit the delete result as JSON.")
def delete(asset: str, date_key: str, yes: bool, json_output: bool) -> None:
    """Delete every screenshot of DATE_KEY for ASSET, and its note."""

    service = _open_service(json_output=json_output)
    if not yes and not json_output:
        click.confirm(f"Delete all screenshots of {asset} {date_key}?", abort=True)

    try:
        result = service.delete_date_entry(asset, date_key)
    except ChartIndexError as exc:
        _fail(exc, json_output=json_output)

    if json_output:
        console.print_json(
            data={
                "asset": result.asset,
                "date_key": result.date_key,
                "removed": [path.name for path in result.removed],
                "note_deleted": result.note_deleted,
            }
        )
        return

    console.print(f"[green]Deleted {len(result.removed)} file(s) from {asset} {date_key}.[/green]")


@cli.command()
@click.argument("asset")
@click.argument("date_key")
@click.argument("new_date")
@click.option("--migrate-note", is_flag=True, help="Move the entry's note to the new date key.")
@click.option("--json", "json_output", is_flag=True, help="Emit the rename result as JSON.")
def rename(asset: str, date_key: str, new_date: str, migrate_note: bool, json_output: bool) -> None:
    """Move DATE_KEY of ASSET to NEW_DATE, keeping its sequence number."""

    service = _open_service(json_output=json_output)
    try:
        result = service.rename_date_entry(asset, date_key, new_date, migrate_note=migrate_note)
    except ChartIndexError as exc:
        _fail(exc, json_output=json_output)

    if json_output:
        console.print_json(
            data={
                "asset": result.asset,
                "old_date_key": result.old_date_key,
                "new_date_key": result.new_date_key,
                "renamed": [[src.name, dst.name] for src, dst in result.renamed],
                "note_migrated": result.note_migrated,
            }
        )
        return

    console.print(
        f"[green]Renamed {asset} {result.old_date_key} to {result.new_date_key} "
        f"({len(result.renamed)} file(s)).[/green]"
    )
    if not migrate_note and result.renamed:
        console.print(
            "[yellow]The note stays under the old date key; use --migrate-note to move it.[/yellow]"
        )


@cli.group()
def note() -> None:
    """Read and edit the note attached to a date entry."""


def _note_store() -> NoteRepository:
    config = _load_config()
    if config.notes.path:
        return NoteRepository(Path(config.notes.path))
    if not config.library.base_path:
        raise ConfigError("Set library.base_path or notes.path to use notes.")
    return NoteRepository.for_library(Path(config.library.base_path).expanduser())


@note.command("show")
@click.argument("asset")
@click.argument("date_key")
@click.option("--json", "json_output", is_flag=True, help="Emit the note as JSON.")
def note_show(asset: str, date_key: str, json_output: bool) -> None:
    """Print the note of ASSET DATE_KEY."""

    try:
        record = _note_store().get(note_key(asset, date_key))
    except (ConfigError, NoteStoreError) as exc:
        _fail(exc, json_output=json_output)

    if json_output:
        console.print_json(data={"note": record.model_dump(mode="json") if record else None})
        return
    if record is None:
        console.print(f"[yellow]No note for {asset} {date_key}.[/yellow]")
        return
    if record.title:
        console.print(f"[bold]{record.title}[/bold]")
    console.print(record.note)


@note.command("set")
@click.argument("asset")
@click.argument("date_key")
@click.option("--title", type=str, help="Short title for the entry.")
@click.option("--text", "text", type=str, default="", help="Note body.")
def note_set(asset: str, date_key: str, title: Optional[str], text: str) -> None:
    """Create or replace the note of ASSET DATE_KEY."""

    try:
        _note_store().upsert(note_key(asset, date_key), title, text)
    except (ConfigError, NoteStoreError) as exc:
        _fail(exc, json_output=False)

    console.print(f"[green]Saved note for {asset} {date_key}.[/green]")


@note.command("delete")
@click.argument("asset")
@click.argument("date_key")
def note_delete(asset: str, date_key: str) -> None:
    """Remove the note of ASSET DATE_KEY."""

    try:
        deleted = _note_store().delete(note_key(asset, date_key))
    except (ConfigError, NoteStoreError) as exc:
        _fail(exc, json_output=False)

    if deleted:
        console.print(f"[green]Deleted note for {asset} {date_key}.[/green]")
    else:
        console.print(f"[yellow]No note for {asset} {date_key}.[/yellow]")


@cli.command()
@click.option("--once", is_flag=True, help="Rescan every asset once and exit.")
@click.option("--debounce", type=float, help="Override the debounce interval in seconds.")
@click.option("--json", "json_output", is_flag=True, help="Emit rescans as JSON lines.")
def watch(once: bool, debounce: Optional[float], json_output: bool) -> None:
    """Keep the index current while screenshots are added, removed, or renamed."""

    try:
        config = _load_config()
        service = ChartIndexService.from_config(config)
    except (ConfigError, ChartIndexError) as exc:
        _fail(exc, json_output=json_output)

    watcher = WatchService(
        service,
        debounce_seconds=debounce if debounce and debounce > 0 else config.watch.debounce_seconds,
    )

    def _emit(result: RescanResult) -> None:
        if json_output:
            console.print_json(
                data={
                    "asset": result.asset,
                    "entries": result.entries,
                    "triggered": [path.name for path in result.triggered_paths],
                }
            )
        else:
            console.print(f"[cyan]Rescanned {result.asset}: {result.entries} date entries.[/cyan]")

    if once:
        for result in watcher.process_once():
            _emit(result)
        return

    console.print("[cyan]Watching for screenshot changes; press Ctrl+C to stop.[/cyan]")
    try:
        watcher.watch(_emit)
    except KeyboardInterrupt:
        watcher.stop()


@cli.group()
def config() -> None:
    """Inspect and edit the Chartdex configuration file."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore CHARTDEX__* environment overrides.")
@click.option("--env", "as_env", is_flag=True, help="Print settings as shell variable assignments.")
def config_view(no_env: bool, as_env: bool) -> None:
    """Show the effective configuration, including --set overrides."""

    try:
        loaded = _manager().load(cli_overrides=_session().overrides, include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_env:
        for name, value in flatten_for_env(loaded).items():
            click.echo(f"{name}={shlex.quote(value)}")
        return

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="json"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="New value, parsed as YAML (e.g. '[BTC, ETH]').")
def config_set(key: str, value: str) -> None:
    """Store VALUE under the dotted KEY in the configuration file."""

    manager = _manager()
    try:
        update = manager.set_value(key, value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if not update.changed:
        console.print(f"[yellow]{escape(update.key)} already has that value.[/yellow]")
        return
    console.print(
        f"[green]Updated {escape(update.key)}[/green] in {escape(str(manager.config_path))}: "
        f"{escape(repr(update.before))} -> {escape(repr(update.after))}"
    )


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
