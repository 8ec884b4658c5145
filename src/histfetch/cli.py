from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.fetcher import run_download_pipeline
from .workflows.fetcher_config import DEFAULT_DATA_DIR, DEFAULT_SEARCH_LIMIT, DataPaths
from .workflows.history import extract_firefox_history
from .workflows.indexer import index_contents
from .workflows.search import format_hits, search
from .workflows.web_fetch import FetchConfig

load_dotenv()

app = typer.Typer(no_args_is_help=True, help="Download, index and search your browsing history.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _paths(ctx: typer.Context) -> DataPaths:
    return ctx.obj["paths"]


@app.callback()
def main(
    ctx: typer.Context,
    data_dir: Path = typer.Option(
        DEFAULT_DATA_DIR,
        "--data-dir",
        envvar="HISTFETCH_DATA_DIR",
        help="Directory holding the history snapshot, raw pages and index.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output."),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    ctx.obj = {"paths": DataPaths.from_dir(data_dir)}


@app.command("extract-firefox-history")
def extract_history_cmd(
    ctx: typer.Context,
    profile_path: Path = typer.Argument(..., help="Firefox profile directory containing places.sqlite."),
) -> None:
    """Snapshot the browsing history of a Firefox profile."""
    try:
        extract_firefox_history(profile_path, _paths(ctx))
    except FileNotFoundError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)


@app.command("download-pages")
def download_pages_cmd(
    ctx: typer.Context,
    parallelism: Optional[int] = typer.Option(None, "--parallelism", min=1, help="Number of worker threads."),
    timeout_seconds: Optional[float] = typer.Option(None, "--timeout-seconds", min=0.001, help="Per-request timeout."),
    bundle_size: Optional[int] = typer.Option(None, "--bundle-size", min=1, help="Results per bundle file."),
    json_out: bool = typer.Option(False, "--json", help="Print the run summary as JSON."),
) -> None:
    """Fetch every history URL not already present in a bundle."""
    config = FetchConfig.from_env()
    if parallelism is not None:
        config = replace(config, parallelism=parallelism)
    if timeout_seconds is not None:
        config = replace(config, timeout=timeout_seconds)
    if bundle_size is not None:
        config = replace(config, bundle_size=bundle_size)
    try:
        summary = run_download_pipeline(_paths(ctx), config)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    if json_out:
        sys.stdout.write(json.dumps(summary.to_dict(), ensure_ascii=False) + "\n")


@app.command("index-contents")
def index_contents_cmd(ctx: typer.Context) -> None:
    """Rebuild the search index from the downloaded pages."""
    try:
        summary = index_contents(_paths(ctx))
    except FileNotFoundError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    typer.echo(f"Indexed {summary.pages_indexed} of {summary.pages_seen} pages from {summary.bundles} bundles")


@app.command("search")
def search_cmd(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Query; append ~ to a term for fuzzy matching."),
    limit: int = typer.Option(DEFAULT_SEARCH_LIMIT, "--limit", min=1, help="Maximum number of hits."),
) -> None:
    """Search the indexed pages."""
    try:
        hits = search(_paths(ctx), query, limit=limit)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    if not hits:
        typer.echo("No results.")
        return
    typer.echo(format_hits(hits))


@app.command("doctor")
def doctor_cmd(ctx: typer.Context) -> None:
    """Print data directory and environment diagnostics."""
    report = build_doctor_report(_paths(ctx))
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


if __name__ == "__main__":
    app()
