# src/runjournal/cli.py
"""runjournal Command Line Interface.

Entry point for the runjournal CLI tool. Operates on journals that an
application already saved:

    runjournal show run1             # pretty-print run1.json
    runjournal push run1 -s journal.yaml
    runjournal config -s journal.yaml
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Literal

import typer
import yaml
from pydantic import ValidationError

from runjournal import __version__
from runjournal.contracts.errors import SerializationError
from runjournal.core.config import JournalSettings, load_settings

__all__ = ["app"]

app = typer.Typer(
    name="runjournal",
    help="runjournal: inspect and publish run journals.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"runjournal version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


def _settings_or_exit(settings_path: Path) -> JournalSettings:
    try:
        return load_settings(settings_path)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings_path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _apply_logging_settings(ctx: typer.Context, config: JournalSettings) -> None:
    from runjournal.core.logging import configure_logging

    if ctx.obj and ctx.obj.get("logging_from_flags"):
        return
    configure_logging(json_output=config.logging.json_output, level=config.logging.level, stream=sys.stderr)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """runjournal: inspect and publish run journals."""
    from runjournal.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING", stream=sys.stderr)
    # Flags on the command line win over the logging section of a settings file
    ctx.obj = {"logging_from_flags": verbose or json_logs}

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


@app.command()
def show(
    path: Path = typer.Argument(..., help="Journal file (the .json suffix is optional)."),
    output_format: Literal["json", "yaml"] = typer.Option(
        "json",
        "--format",
        "-f",
        help="Output format.",
    ),
    sections_only: bool = typer.Option(
        False,
        "--sections-only",
        help="Omit the schema metadata section.",
    ),
) -> None:
    """Print a saved journal."""
    from runjournal.plugins.sinks.file_sink import load_journal

    try:
        document = load_journal(path)
    except FileNotFoundError:
        typer.echo(f"Error: Journal not found: {path}", err=True)
        raise typer.Exit(1) from None
    except SerializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    data = document.sections() if sections_only else document.to_dict()
    if output_format == "yaml":
        typer.echo(yaml.safe_dump(data, sort_keys=False), nl=False)
    else:
        typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@app.command()
def push(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Journal file to send (the .json suffix is optional)."),
    settings: Path = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Insert a saved journal into the remote document store as a new record."""
    from runjournal.plugins.sinks.file_sink import load_journal
    from runjournal.plugins.sinks.remote_sink import RemoteSink

    config = _settings_or_exit(settings)
    _apply_logging_settings(ctx, config)
    if not config.store.enable:
        typer.echo("Error: Remote store is disabled (set store.enable: true).", err=True)
        raise typer.Exit(1)

    try:
        document = load_journal(path)
    except FileNotFoundError:
        typer.echo(f"Error: Journal not found: {path}", err=True)
        raise typer.Exit(1) from None
    except SerializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if document.is_empty:
        typer.echo("Journal has no sections; nothing sent.")
        return

    result = RemoteSink().save(document, config.store)
    if result.warning is not None:
        typer.secho(f"Warning: {result.warning}", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(1)
    if result.artifact is not None:
        typer.echo(f"Journal sent to {result.artifact.path_or_uri} (sha256 {result.artifact.content_hash[:12]})")


@app.command()
def config(
    settings: Path = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Print resolved settings (password masked)."""
    resolved = _settings_or_exit(settings)
    data = resolved.model_dump(mode="json")
    data["store"] = resolved.store.redacted()
    typer.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


if __name__ == "__main__":
    app()
