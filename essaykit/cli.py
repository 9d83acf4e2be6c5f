"""
CLI interface for essaykit.

Usage:
    essaykit list [--refresh]
    essaykit show 2025-12-27-143000.md
    essaykit edit 2025-12-27-143000.md new-body.md
    essaykit publish draft.md --kind essay
    essaykit upload photo.jpg
"""

import asyncio
import json
import os
import shutil
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .assets import AssetUploader
from .config import EssayKitConfig, load_or_create_config
from .errors import ConflictError, EssayKitError, NotConfiguredError
from .essay_store import EssayStore
from .frontmatter import header_fields
from .github_client import GitHubClient
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .types import Document, DocumentKind


NOT_CONFIGURED_HINT = """
Set a GitHub token and repository, for example:

    export ESSAYKIT_GITHUB_TOKEN=ghp_...
    export ESSAYKIT_GITHUB_OWNER=you
    export ESSAYKIT_GITHUB_REPO=blog

or edit essaykit.toml in the config directory (see: essaykit config).
"""

_json_output = False
_ops_handler = None


# Quiet by default; ESSAYKIT_VERBOSE=1 enables debug logging
if os.environ.get("ESSAYKIT_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"essaykit {version('essaykit')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _output_width() -> int:
    """Terminal width for line truncation. Use generous default when not a TTY."""
    if not sys.stdout.isatty():
        return 200
    return shutil.get_terminal_size((120, 24)).columns


app = typer.Typer(
    name="essaykit",
    help="Read, edit and publish Markdown essays stored on GitHub.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Read, edit and publish Markdown essays stored on GitHub."""


# -----------------------------------------------------------------------------
# Wiring
# -----------------------------------------------------------------------------

def _get_config() -> EssayKitConfig:
    global _ops_handler
    try:
        config = load_or_create_config()
    except (OSError, ValueError) as e:
        typer.echo(f"Error loading config: {e}", err=True)
        raise typer.Exit(1)
    if _ops_handler is None:
        try:
            _ops_handler = configure_ops_log(config.path)
        except OSError:
            pass  # ops log is best-effort
    return config


def _make_client(config: EssayKitConfig) -> GitHubClient:
    return GitHubClient(config)


def _run(func):
    """Run `await func(store, client, config)` and map errors to exit codes."""
    config = _get_config()

    async def runner():
        async with _make_client(config) as client:
            store = EssayStore(client, config)
            return await func(store, client, config)

    try:
        return asyncio.run(runner())
    except ConflictError as e:
        typer.echo(f"Conflict: {e.message}", err=True)
        typer.echo("The essay changed remotely. Reload it and apply your edit again.", err=True)
        raise typer.Exit(1)
    except NotConfiguredError as e:
        typer.echo(f"Error: {e}", err=True)
        typer.echo(NOT_CONFIGURED_HINT.rstrip(), err=True)
        raise typer.Exit(1)
    except EssayKitError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


def _format_line(doc: Document, width: int) -> str:
    line = f"{doc.id}  {doc.published_at:%Y-%m-%d %H:%M}  {doc.title or doc.preview}"
    if len(line) > width:
        line = line[:width - 3] + "..."
    return line


def _read_input_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"Error: cannot read {path}: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("list")
def list_essays(
    refresh: Annotated[bool, typer.Option(
        "--refresh", "-r",
        help="Ignore the cache and fetch from GitHub",
    )] = False,
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Maximum number of essays to show (0 = all)",
    )] = 0,
):
    """List essays, newest first."""
    async def run(store: EssayStore, client, config):
        return await store.list(force_refresh=refresh)

    documents = _run(run)
    if limit > 0:
        documents = documents[:limit]

    if _get_json_output():
        _echo_json([d.to_dict() for d in documents])
        return
    if not documents:
        typer.echo("No essays found.")
        return
    width = _output_width()
    for doc in documents:
        typer.echo(_format_line(doc, width))


@app.command()
def show(
    id: Annotated[str, typer.Argument(help="Essay file name, e.g. 2025-12-27-143000.md")],
):
    """Show one essay as stored on GitHub."""
    async def run(store: EssayStore, client, config):
        return await store.get(id)

    doc = _run(run)
    if _get_json_output():
        data = doc.to_dict()
        data["header"] = header_fields(doc.raw_content)
        _echo_json(data)
        return
    typer.echo(doc.raw_content)


@app.command()
def edit(
    id: Annotated[str, typer.Argument(help="Essay file name")],
    body_file: Annotated[Path, typer.Argument(help="File with the new body text")],
):
    """
    Replace an essay's body, keeping its header.

    The essay is read first to get its current version; if it changes on
    GitHub before the write lands, the edit is rejected.
    """
    new_body = _read_input_file(body_file)

    async def run(store: EssayStore, client, config):
        doc = await store.get(id)
        return await store.save(doc, new_body)

    doc = _run(run)
    if _get_json_output():
        _echo_json(doc.to_dict())
        return
    typer.echo(f"Saved {doc.id}")


@app.command()
def publish(
    file: Annotated[Path, typer.Argument(help="Markdown (or gallery JSON) file to publish")],
    kind: Annotated[DocumentKind, typer.Option(
        "--kind", "-k",
        help="Document kind",
    )] = DocumentKind.ESSAY,
    title: Annotated[str, typer.Option(
        "--title", "-t",
        help="Title (used for post file names and the header)",
    )] = "",
):
    """Publish a new document at a generated path."""
    content = _read_input_file(file)

    async def run(store: EssayStore, client, config):
        return await store.publish(kind, content, title=title)

    result = _run(run)
    if _get_json_output():
        _echo_json({"path": result.path, "url": result.url, "action": result.action})
        return
    verb = "Updated" if result.action == "update" else "Added"
    typer.echo(f"{verb} {result.path}")
    if result.url:
        typer.echo(result.url)


@app.command()
def upload(
    image: Annotated[Path, typer.Argument(help="Image file (JPEG, PNG, GIF or WebP)")],
    name: Annotated[Optional[str], typer.Option(
        "--name",
        help="File name in the image repository (default: generated)",
    )] = None,
):
    """Upload an image and print its CDN URL."""
    try:
        data = image.read_bytes()
    except OSError as e:
        typer.echo(f"Error: cannot read {image}: {e}", err=True)
        raise typer.Exit(1)

    async def run(store: EssayStore, client, config):
        return await AssetUploader(client, config).upload_image(data, file_name=name)

    result = _run(run)
    if _get_json_output():
        _echo_json({"path": result.path, "url": result.url})
        return
    typer.echo(result.url)


@app.command("clear-cache")
def clear_cache():
    """Delete the in-memory and on-disk essay cache."""
    async def run(store: EssayStore, client, config):
        store.clear_cache()

    _run(run)
    typer.echo("Cache cleared.")


@app.command("config")
def show_config():
    """Show the resolved configuration (token masked)."""
    config = _get_config()
    g = config.github
    data = {
        "config_file": str(config.config_path),
        "snapshot": str(config.snapshot_path),
        "github": {
            "owner": g.owner,
            "repo": g.repo,
            "branch": g.branch,
            "api_url": g.api_url,
            "token": "set" if g.token else "missing",
        },
        "content": {
            "essays_dir": config.content.essays_dir,
            "posts_dir": config.content.posts_dir,
            "photos_dir": config.content.photos_dir,
        },
        "images": {
            "repo": config.images.repo,
            "branch": config.images.branch,
            "path": config.images.path,
            "cdn": config.images.cdn,
        },
    }
    if _get_json_output():
        _echo_json(data)
        return
    typer.echo(f"Config file:  {data['config_file']}")
    typer.echo(f"Snapshot:     {data['snapshot']}")
    typer.echo(f"Repository:   {g.owner or '?'}/{g.repo or '?'}@{g.branch}")
    typer.echo(f"Token:        {data['github']['token']}")
    typer.echo(f"Essays dir:   {config.content.essays_dir}")
    typer.echo(f"Image repo:   {config.images.repo or '(not set)'} ({config.images.cdn})")


@app.command()
def verify():
    """Check that the token is accepted by GitHub."""
    async def run(store: EssayStore, client: GitHubClient, config):
        return await client.verify_token()

    login = _run(run)
    typer.echo(f"Token OK: authenticated as {login}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="essaykit CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
