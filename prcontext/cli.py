"""Typer-based CLI for indexing repositories and anchoring review comments."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config_manager
from .diff_position import calculate_diff_position
from .errors import NoEligibleFilesError, RemoteError
from .fetcher import RetryingFetcher
from .github import GitHubClient
from .indexer import CodebaseIndexer
from .models import IndexedCodebase
from .review_context import build_review_context
from .scanner import SourceScanner

app = typer.Typer(
    help="🔎 prcontext — codebase context and diff anchoring for AI pull-request reviews.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Configuration group ──────────────────────────────────────
config_app = typer.Typer(
    help="⚙️  Configuration — GitHub token and API endpoint.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"prcontext v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log progress at INFO level."),
):
    """prcontext: index the code around a pull request and map comment lines to diff positions."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _split_repo(full_name: str) -> Tuple[str, str]:
    owner, _, repo = full_name.partition("/")
    if not owner or not repo or "/" in repo:
        raise typer.BadParameter(f"Expected OWNER/REPO, got '{full_name}'.")
    return owner, repo


def _client() -> GitHubClient:
    settings = config_manager.load_config()
    return GitHubClient(token=settings.get("token") or None, api_url=settings["api_url"])


def _render_codebase(codebase: IndexedCodebase, prioritized: List[str]) -> None:
    table = Table(title="Indexed files")
    table.add_column("File")
    table.add_column("Declarations", justify="right")
    table.add_column("Imports", justify="right")
    for source_file in codebase.files:
        marker = "★ " if source_file.path in prioritized else ""
        table.add_row(
            f"{marker}{source_file.path}",
            str(len(source_file.declarations)),
            str(len(source_file.import_targets)),
        )
    console.print(table)
    console.print(
        f"Files: {len(codebase.files)} | Import targets: {len(codebase.dependencies)} "
        f"| Failures: {len(codebase.failures)}"
    )
    for failure in codebase.failures:
        console.print(f"  [yellow]⚠ {failure.operation} {failure.path}: {failure.reason}[/yellow]")


@app.command("index")
def index_repository(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    branch: str = typer.Option("main", "--branch", "-b", help="Branch or ref to index."),
    prioritize: Optional[List[str]] = typer.Option(
        None, "--prioritize", "-p", help="Changed file to index first (repeatable).",
    ),
    allow_empty: bool = typer.Option(False, "--allow-empty", help="Do not fail when no source files exist."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write the index as JSON to this file."),
):
    """Index a repository branch, changed files first."""
    owner, repo = _split_repo(repository)
    prioritized = list(prioritize or [])
    indexer = CodebaseIndexer(
        _client(),
        fetcher=RetryingFetcher(config_manager.load_retry_config()),
        settings=config_manager.load_index_config(),
    )

    try:
        codebase = asyncio.run(
            indexer.index_codebase(owner, repo, branch, prioritized, allow_empty=allow_empty)
        )
    except (NoEligibleFilesError, RemoteError) as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)

    _render_codebase(codebase, prioritized)
    if json_out:
        json_out.write_text(json.dumps(codebase.to_dict(), indent=2), encoding="utf-8")
        typer.echo(f"Wrote {json_out}")


@app.command("pr")
def pull_request_context(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    number: int = typer.Argument(..., help="Pull request number."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write the review context as JSON to this file."),
):
    """Build the review context of a pull request."""
    owner, repo = _split_repo(repository)

    try:
        context = asyncio.run(build_review_context(
            _client(),
            owner,
            repo,
            number,
            fetcher=RetryingFetcher(config_manager.load_retry_config()),
            settings=config_manager.load_index_config(),
        ))
    except (NoEligibleFilesError, RemoteError) as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)

    pr = context.pull_request
    console.print(f"[bold]PR #{pr.number}[/bold] {pr.title} ({pr.head_branch} → {pr.base_branch})")
    console.print(f"Changed files: {len(pr.files)} | With patches: {len(context.patches)}")
    _render_codebase(context.codebase, pr.changed_paths)

    if json_out:
        payload = {
            "pull_request": asdict(pr),
            "codebase": context.codebase.to_dict(),
            "patches": context.patches,
        }
        json_out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        typer.echo(f"Wrote {json_out}")


@app.command("position")
def diff_position(
    patch_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File holding one file's unified diff."),
    line: int = typer.Argument(..., min=1, help="Line number in the new version of the file."),
):
    """Print the diff position used to anchor an inline comment on LINE."""
    patch = patch_file.read_text(encoding="utf-8")
    position = calculate_diff_position(patch, line)
    if position is None:
        typer.echo(f"Line {line} cannot be anchored in this diff.")
        raise typer.Exit(code=1)
    typer.echo(str(position))


@app.command("scan")
def scan_file(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to scan."),
):
    """Show the declarations and imports found in a local file."""
    scanned = SourceScanner().scan(source.name, source.read_text(encoding="utf-8", errors="ignore"))

    table = Table(title=f"Declarations in {source.name}")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Exported")
    table.add_column("Lines", justify="right")
    for declaration in scanned.declarations:
        table.add_row(
            declaration.kind,
            declaration.name,
            "yes" if declaration.exported else "no",
            f"{declaration.span.start_line}-{declaration.span.end_line}",
        )
    console.print(table)
    console.print("Imports: " + (", ".join(scanned.import_targets) or "none"))


@config_app.command("show")
def show_config():
    """Show the effective GitHub settings."""
    settings = config_manager.load_config()
    token = settings.get("token") or ""
    masked = f"{token[:4]}…{token[-4:]}" if len(token) > 8 else ("set" if token else "not set")
    typer.echo(f"API URL: {settings['api_url']}")
    typer.echo(f"Token:   {masked}")


@config_app.command("set-token")
def set_token(
    token: str = typer.Argument(..., help="GitHub personal access token."),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Custom REST endpoint (GitHub Enterprise)."),
):
    """Store a GitHub token in the config file."""
    if not config_manager.save_config(token=token, api_url=api_url or ""):
        typer.echo("❌ Could not write config file.", err=True)
        raise typer.Exit(code=1)
    typer.echo("✅ Token saved.")
