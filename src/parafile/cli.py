"""Command line interface for ParaFile."""

from __future__ import annotations

import asyncio
import difflib
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from parafile.classification import build_ai_gateway
from parafile.config import (
    DEFAULT_APP_DIR,
    ConfigError,
    ConfigManager,
    ParafileConfig,
    resolve_with_precedence,
)
from parafile.config.models import FORMATTING_MODES
from parafile.feedback import FeedbackStore
from parafile.logging_config import configure_logging
from parafile.organization import FileOrganizer
from parafile.processing import ProcessingResult
from parafile.service import WatchService, build_runtime
from parafile.state import Correction, ProcessingLog, StateError
from parafile.watch import FileMovedByUser, WatcherError, WatcherEvent

console = Console()

CONFIG_FILENAME = "config.yaml"
LOG_FILENAME = "processing-log.json"
FEEDBACK_FILENAME = "feedback.json"


class AppContext:
    """Paths shared by every command, rooted at the application directory."""

    def __init__(self, home: Path) -> None:
        self.home = home.expanduser()

    @property
    def config_path(self) -> Path:
        return self.home / CONFIG_FILENAME

    @property
    def log_path(self) -> Path:
        return self.home / LOG_FILENAME

    @property
    def feedback_path(self) -> Path:
        return self.home / FEEDBACK_FILENAME

    def config_manager(self) -> ConfigManager:
        return ConfigManager(self.config_path)

    def processing_log(self, config: Optional[ParafileConfig] = None) -> ProcessingLog:
        max_entries = config.history.max_entries if config else 100
        return ProcessingLog(
            self.log_path, feedback=self.feedback_store(), max_entries=max_entries
        )

    def feedback_store(self) -> FeedbackStore:
        return FeedbackStore(self.feedback_path)


pass_app = click.make_pass_decorator(AppContext)


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool) -> None:
    """Print ``message`` unless quiet mode suppresses it."""
    if quiet and mode != "error":
        return
    console.print(message)


def _load_config(
    app: AppContext, *, json_output: bool = False, **overrides: Any
) -> ParafileConfig:
    manager = app.config_manager()
    cli_overrides = {key: value for key, value in overrides.items() if value is not None}
    try:
        manager.ensure_exists()
        return manager.load(cli_overrides=cli_overrides or None)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        raise  # pragma: no cover - _handle_cli_error always raises


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


def _print_diff(before: list[str], after: list[str]) -> bool:
    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    if diff:
        console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    return bool(diff)


def _render_result(result: ProcessingResult, *, quiet: bool) -> None:
    if result.success:
        note = " (kept name)" if result.skipped_rename else ""
        tokens = result.token_usage.total_tokens
        _emit_message(
            f"[green]{result.file_name} -> {result.category}/{result.new_name}{note}[/green]"
            f" [dim]{result.processing_time:.2f}s, {tokens} tokens[/dim]",
            mode="summary",
            quiet=quiet,
        )
        return
    step = result.processing_step.value if result.processing_step else "unknown"
    _emit_message(
        f"[red]{result.file_name} failed during {step}: {result.error}[/red]",
        mode="error",
        quiet=quiet,
    )


def _render_event(event: WatcherEvent, *, quiet: bool) -> None:
    if isinstance(event, FileMovedByUser):
        _emit_message(
            f"[yellow]{event.path.name} was moved back; leaving it alone.[/yellow]",
            mode="warning",
            quiet=quiet,
        )
    elif isinstance(event, WatcherError):
        _emit_message(f"[red]Watcher error: {event.message}[/red]", mode="error", quiet=quiet)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="parafile")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="PARAFILE_HOME",
    default=DEFAULT_APP_DIR,
    show_default=True,
    help="Directory holding the configuration, processing log, and feedback files.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, home: Path, verbose: bool) -> None:
    """ParaFile watches a folder and files new documents using AI."""
    app = AppContext(home)
    ctx.obj = app
    settings = None
    if app.config_path.exists():
        try:
            settings = app.config_manager().load(ensure_file=False).logging
        except ConfigError:
            settings = None
    configure_logging(settings, verbose=verbose)


@cli.command()
@click.argument("path", required=False, type=click.Path(file_okay=False, path_type=str))
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@pass_app
@click.pass_context
def watch(ctx: click.Context, app: AppContext, path: str | None, quiet: bool) -> None:
    """Watch PATH (or the configured folder) and organize new documents."""

    watched = str(Path(path).expanduser().resolve()) if path else None
    config = _load_config(app, watched_folder=watched)
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default

    if not config.watched_folder:
        raise click.ClickException(
            "No folder to watch. Pass PATH or run `parafile config set watched_folder --value ...`."
        )

    runtime = build_runtime(config, log_path=app.log_path, feedback_path=app.feedback_path)
    service = WatchService(
        runtime.watcher,
        runtime.processor,
        log=runtime.log,
        on_result=lambda result: _render_result(result, quiet=quiet_enabled),
        on_event=lambda event: _render_event(event, quiet=quiet_enabled),
    )

    _emit_message(
        f"[cyan]Watching {config.watched_folder}. Press Ctrl+C to stop.[/cyan]",
        mode="detail",
        quiet=quiet_enabled,
    )
    try:
        started = asyncio.run(service.run(config.watched_folder))
    except KeyboardInterrupt:
        _emit_message(
            "[yellow]Watch stopped by user request.[/yellow]", mode="summary", quiet=quiet_enabled
        )
        return
    if not started:
        raise click.ClickException(f"Unable to watch {config.watched_folder}.")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@pass_app
def process(app: AppContext, files: tuple[str, ...], json_output: bool, quiet: bool) -> None:
    """Process FILES once without watching."""

    config = _load_config(app, json_output=json_output)
    runtime = build_runtime(config, log_path=app.log_path, feedback_path=app.feedback_path)
    service = WatchService(runtime.watcher, runtime.processor, log=runtime.log)

    async def _run() -> list[ProcessingResult]:
        results = []
        for name in files:
            results.append(await service.process(Path(name).expanduser().resolve()))
        return results

    results = asyncio.run(_run())
    if json_output:
        console.print_json(
            data={"results": [r.model_dump(mode="json", by_alias=True) for r in results]}
        )
    else:
        for result in results:
            _render_result(result, quiet=quiet)
    if not all(result.success for result in results):
        raise SystemExit(1)


@cli.command("log")
@click.option("--limit", type=int, default=None, help="Number of entries to show.")
@click.option("--json", "json_output", is_flag=True, help="Emit entries as JSON.")
@pass_app
def log_command(app: AppContext, limit: int | None, json_output: bool) -> None:
    """Show recently processed files, newest first."""

    config = _load_config(app, json_output=json_output)
    effective_limit = limit if limit is not None else config.cli.log_limit_default
    try:
        entries = app.processing_log(config).recent(effective_limit)
    except StateError as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(
            data={"entries": [entry.model_dump(mode="json", by_alias=True) for entry in entries]}
        )
        return
    if not entries:
        console.print("[yellow]No files have been processed yet.[/yellow]")
        return

    table = Table(title="Processing log")
    table.add_column("ID", style="dim")
    table.add_column("When")
    table.add_column("Original")
    table.add_column("ParaFile name")
    table.add_column("Category")
    table.add_column("Status")
    for entry in entries:
        if not entry.success:
            status = f"[red]failed[/red] {entry.error or ''}".rstrip()
        else:
            status = "[yellow]corrected[/yellow]" if entry.corrected else "[green]ok[/green]"
        table.add_row(
            entry.id,
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.original_name,
            entry.parafile_name,
            entry.category,
            status,
        )
    console.print(table)


@cli.command()
@click.argument("entry_id")
@click.option("--name", "new_name", help="Corrected filename.")
@click.option("--name-reason", help="Why the name was wrong.")
@click.option("--category", "new_category", help="Corrected category.")
@click.option("--category-reason", help="Why the category was wrong.")
@click.option("--json", "json_output", is_flag=True, help="Emit the updated entry as JSON.")
@pass_app
def correct(
    app: AppContext,
    entry_id: str,
    new_name: str | None,
    name_reason: str | None,
    new_category: str | None,
    category_reason: str | None,
    json_output: bool,
) -> None:
    """Correct the name and/or category ParaFile chose for ENTRY_ID.

    Corrections are recorded as feedback and shape future AI decisions.
    """

    if not new_name and not new_category:
        raise click.UsageError("Provide --name and/or --category.")

    config = _load_config(app, json_output=json_output)
    if new_category and config.find_category(new_category) is None:
        _handle_cli_error(
            f"Category '{new_category}' is not configured.",
            code="unknown_category",
            json_output=json_output,
        )

    correction = Correction(
        new_name=new_name,
        name_feedback=name_reason,
        new_category=new_category,
        category_feedback=category_reason,
    )
    try:
        entry = app.processing_log(config).add_correction(entry_id, correction)
    except StateError as exc:
        _handle_cli_error(
            str(exc), code="invalid_correction", json_output=json_output, original=exc
        )
        return

    if entry is None:
        _handle_cli_error(
            f"No log entry with id {entry_id}.", code="missing_entry", json_output=json_output
        )
        return

    if json_output:
        console.print_json(data=entry.model_dump(mode="json", by_alias=True))
        return
    console.print(
        f"[green]Recorded correction for {entry.original_name}: "
        f"{entry.category}/{entry.parafile_name}.[/green]"
    )


@cli.group()
def feedback() -> None:
    """Inspect what ParaFile has learned from corrections."""


@feedback.command("analyze")
@click.option("--json", "json_output", is_flag=True, help="Emit the analysis as JSON.")
@pass_app
def feedback_analyze(app: AppContext, json_output: bool) -> None:
    """Summarize correction history and recurring mistakes."""

    analysis = app.feedback_store().analyze_feedback_patterns()
    if json_output:
        console.print_json(data=analysis.model_dump(mode="json"))
        return

    console.print(
        f"Category corrections: {analysis.total_category_corrections}, "
        f"name corrections: {analysis.total_name_corrections}"
    )
    if analysis.most_corrected_categories:
        table = Table(title="Most corrected categories")
        table.add_column("Category")
        table.add_column("Corrections", justify="right")
        table.add_column("Corrected to")
        for stats in analysis.most_corrected_categories:
            targets = ", ".join(f"{name} ({count})" for name, count in stats.targets.items())
            table.add_row(stats.category, str(stats.corrections), targets)
        console.print(table)
    for mistake in analysis.common_mistakes:
        examples = ", ".join(mistake.examples)
        console.print(
            f"[yellow]{mistake.from_category} -> {mistake.to_category}[/yellow] "
            f"x{mistake.count}" + (f" (e.g. {examples})" if examples else "")
        )


@cli.command()
@click.argument("path", required=False, type=click.Path(file_okay=False, path_type=str))
@pass_app
def cleanup(app: AppContext, path: str | None) -> None:
    """Remove empty folders below PATH (defaults to the watched folder)."""

    config = _load_config(app)
    root = path or config.watched_folder
    if not root:
        raise click.ClickException("Provide PATH or configure watched_folder.")
    removed = FileOrganizer().cleanup_empty_folders(Path(root).expanduser())
    for directory in removed:
        console.print(f"[dim]Removed {directory}[/dim]")
    console.print(f"[green]Removed {len(removed)} empty folder(s).[/green]")


@cli.group()
def config() -> None:
    """Manage ParaFile configuration, categories, and variables."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
@pass_app
def config_view(app: AppContext, no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = app.config_manager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
@pass_app
def config_set(app: AppContext, key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY."""
    manager = app.config_manager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'llm.temperature'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=ParafileConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if not manager.save(file_data):
        raise click.ClickException(f"Unable to write {manager.config_path}.")
    if not _print_diff(before, manager.read_text().splitlines()):
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
@pass_app
def config_edit(app: AppContext) -> None:
    """Open the configuration file in an interactive editor session."""
    manager = app.config_manager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")

    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=ParafileConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if not manager.save(parsed):
        raise click.ClickException(f"Unable to write {manager.config_path}.")
    console.print("[green]Configuration updated successfully.[/green]")


@config.command("add-category")
@click.argument("name")
@click.option("--description", required=True, help="What documents belong in this category.")
@click.option(
    "--pattern",
    "naming_pattern",
    default="{original_name}",
    show_default=True,
    help="Naming pattern, e.g. '{date}_{vendor}_invoice'.",
)
@pass_app
def config_add_category(app: AppContext, name: str, description: str, naming_pattern: str) -> None:
    """Add a category called NAME."""
    try:
        app.config_manager().add_category(
            {"name": name, "description": description, "naming_pattern": naming_pattern}
        )
    except (ConfigError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Added category {name}.[/green]")


@config.command("delete-category")
@click.argument("name")
@pass_app
def config_delete_category(app: AppContext, name: str) -> None:
    """Delete the category called NAME."""
    try:
        app.config_manager().delete_category(name)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Deleted category {name}.[/green]")


@config.command("add-variable")
@click.argument("name")
@click.option("--description", required=True, help="What value to extract from documents.")
@click.option(
    "--formatting",
    type=click.Choice(FORMATTING_MODES),
    default="none",
    show_default=True,
    help="Case transform applied to the extracted value.",
)
@pass_app
def config_add_variable(app: AppContext, name: str, description: str, formatting: str) -> None:
    """Add a naming variable called NAME."""
    try:
        app.config_manager().add_variable(
            {"name": name, "description": description, "formatting": formatting}
        )
    except (ConfigError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Added variable {name}.[/green]")


@config.command("delete-variable")
@click.argument("name")
@pass_app
def config_delete_variable(app: AppContext, name: str) -> None:
    """Delete the naming variable called NAME."""
    try:
        app.config_manager().delete_variable(name)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Deleted variable {name}.[/green]")


@config.command("suggest-variable")
@click.argument("request")
@click.option("--add", "add_variable", is_flag=True, help="Save the suggestion to the config.")
@pass_app
def config_suggest_variable(app: AppContext, request: str, add_variable: bool) -> None:
    """Ask the AI to turn REQUEST into a variable definition."""
    loaded = _load_config(app)
    gateway = build_ai_gateway(
        loaded.llm, max_characters=loaded.extraction.max_prompt_characters
    )
    if gateway is None:
        raise click.ClickException("No language model credentials are configured.")
    try:
        suggestion = gateway.suggest_variable(request)
    except Exception as exc:
        raise click.ClickException(f"Unable to suggest a variable: {exc}") from exc

    console.print(f"[bold]{suggestion.name}[/bold]: {suggestion.description}")
    if not add_variable:
        return
    try:
        app.config_manager().add_variable(
            {"name": suggestion.name, "description": suggestion.description}
        )
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Added variable {suggestion.name}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
