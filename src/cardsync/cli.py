"""CLI entrypoint for cardsync.

Commands
- sync:     download every remote contact into the note vault
- push:     upload the editable fields of one note to its remote card
- validate: check that the remote address book can be synced
- inspect:  parse a local .vcf file and print its cards

Notes
- Configuration precedence: CLI > ENV (CARDSYNC__) > YAML file, see config loader.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer

from .config import AppConfig, load_config
from .logging import setup_logging
from .sync.orchestrator import EXIT_FATAL, Orchestrator
from .vcard.errors import VCardError
from .vcard.parser import parse_vcards

app = typer.Typer(add_completion=False, help="Sync a CardDAV address book with a Markdown note vault")


def _cli_overrides_from_args(*, dry_run: bool | None, verbose: bool) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if dry_run is not None:
        overrides["sync"] = {"dry_run": dry_run}
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    return overrides


def _load(config: Path | None, *, dry_run: bool | None = None, verbose: bool = False) -> AppConfig:
    try:
        cfg = load_config(
            file_path=str(config) if config else None,
            cli_overrides=_cli_overrides_from_args(dry_run=dry_run, verbose=verbose),
        )
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_FATAL) from exc
    setup_logging(level=cfg.logging.level, json=cfg.logging.as_json)
    return cfg


_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML config file.", show_default=False)
_VERBOSE_OPTION = typer.Option(
    False, "--verbose", "-v", help="Set log level to DEBUG (overrides config.logging.level)."
)
_DRY_RUN_OPTION = typer.Option(
    None,
    "--dry-run/--no-dry-run",
    help="Do not write notes or cards; log intended actions.",
    show_default=False,
)


@app.command(help="Download remote contacts into the sync folder.")
def sync(
    config: Path | None = _CONFIG_OPTION,
    dry_run: bool | None = _DRY_RUN_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    cfg = _load(config, dry_run=dry_run, verbose=verbose)
    exit_code, res = Orchestrator(cfg).sync_down()
    if res is not None:
        typer.echo(
            "cardsync sync summary: "
            f"fetched={res.fetched} created={res.created} updated={res.updated} "
            f"skipped={res.skipped} errors={res.errors}"
        )
    raise typer.Exit(code=exit_code)


@app.command(help="Upload aliases, tags and note body of NOTE to its remote card.")
def push(
    note: Path = typer.Argument(..., exists=True, dir_okay=False, help="Markdown note to upload."),
    config: Path | None = _CONFIG_OPTION,
    dry_run: bool | None = _DRY_RUN_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    cfg = _load(config, dry_run=dry_run, verbose=verbose)
    exit_code, res = Orchestrator(cfg).push(note)
    if res is not None:
        typer.echo(f"cardsync push: {res.reason}")
    raise typer.Exit(code=exit_code)


@app.command(help="Check that every remote contact can be synced.")
def validate(
    config: Path | None = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    cfg = _load(config, verbose=verbose)
    exit_code, problems = Orchestrator(cfg).validate()
    for problem in problems:
        typer.echo(f"invalid: {problem}")
    if exit_code == 0:
        typer.echo("Configuration seems valid")
    raise typer.Exit(code=exit_code)


@app.command(help="Parse a local .vcf file and print its cards as JSON.")
def inspect(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="vCard 4.0 file."),
) -> None:
    # newline="" keeps CRLF line delimiters intact
    with path.open("r", encoding="utf-8", newline="") as fh:
        raw = fh.read()
    try:
        cards = parse_vcards(raw)
    except VCardError as exc:
        typer.echo(f"{path.name}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps([card.to_dict() for card in cards], indent=2, ensure_ascii=False))


if __name__ == "__main__":  # pragma: no cover
    app()
