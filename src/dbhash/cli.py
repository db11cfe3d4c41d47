"""Click CLI commands for dbhash."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from dbhash.algorithms import HashAlgorithm
from dbhash.config import get_settings

console = Console()

ALGORITHM_CHOICE = click.Choice([a.value for a in HashAlgorithm], case_sensitive=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """dbhash — Dropbox content hash tool."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# hash
# ---------------------------------------------------------------------------


@cli.command("hash")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--algorithm", "-a", type=ALGORITHM_CHOICE, default=None, help="Digest algorithm (default from settings).")
@click.option("--chunk-size", type=click.IntRange(min=1), default=None, help="Read size in bytes.")
@click.option("--blocks", is_flag=True, help="Also print the digest of every 4 MiB block.")
def hash_files(files: tuple[Path, ...], algorithm: str | None, chunk_size: int | None, blocks: bool) -> None:
    """Compute the content hash of local files."""
    from dbhash.hasher import block_digests, hash_file

    settings = get_settings()
    algo = HashAlgorithm.from_name(algorithm) if algorithm else settings.hash_algorithm
    size = chunk_size or settings.read_chunk_size

    if not algo.available:
        console.print(f"[red]Algorithm {algo} is not available in this Python build.[/red]")
        sys.exit(1)

    for path in files:
        hasher = hash_file(path, algo, size)
        # sha256sum-style lines, no rich markup
        click.echo(f"{hasher.hexdigest()}  {path}")
        if blocks:
            for index, digest in enumerate(block_digests(hasher)):
                click.echo(f"  block {index}: {digest}")


# ---------------------------------------------------------------------------
# algorithms
# ---------------------------------------------------------------------------


@cli.command("algorithms")
def algorithms() -> None:
    """List supported digest algorithms."""
    table = Table(title="Digest algorithms")
    table.add_column("Name", style="cyan")
    table.add_column("Digest size", justify="right")
    table.add_column("Hex length", justify="right")
    table.add_column("Available")

    for algo in HashAlgorithm:
        if algo.available:
            table.add_row(algo.value, f"{algo.digest_size} B", str(algo.hex_length), "[green]yes[/green]")
        else:
            table.add_row(algo.value, "-", "-", "[red]no[/red]")

    console.print(table)


# ---------------------------------------------------------------------------
# Dropbox
# ---------------------------------------------------------------------------


def _make_client(authority: str | None):
    from dbhash.dropbox_client import DropboxClient

    return DropboxClient(get_settings(), authority=authority)


async def _fetch_metadata(authority: str | None, path: str):
    async with _make_client(authority) as client:
        return await client.get_metadata(path)


async def _verify(authority: str | None, path: str, local: Path | None):
    async with _make_client(authority) as client:
        if local is not None:
            return await client.verify_local(path, local)
        return await client.verify(path)


@cli.command("metadata")
@click.argument("path")
@click.option("--authority", default=None, help="Token authority to use.")
def metadata(path: str, authority: str | None) -> None:
    """Show Dropbox metadata for PATH (a path or id:...)."""
    import httpx

    from dbhash.dropbox_client import DropboxError

    try:
        meta = asyncio.run(_fetch_metadata(authority, path))
    except (DropboxError, httpx.HTTPError) as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    console.print(f"\n[bold]{meta.path_display or path}[/bold]")
    console.print(f"  Kind:          {meta.tag}")
    console.print(f"  ID:            {meta.id}")
    console.print(f"  Size:          {_human_size(meta.size)}")
    console.print(f"  Content hash:  {meta.content_hash or '-'}")
    if meta.server_modified:
        console.print(f"  Modified:      {meta.server_modified.isoformat()}")


@cli.command("verify")
@click.argument("path")
@click.option("--authority", default=None, help="Token authority to use.")
@click.option(
    "--local",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Compare this local file instead of downloading.",
)
def verify(path: str, authority: str | None, local: Path | None) -> None:
    """Check a Dropbox file against its reported content hash."""
    import httpx

    from dbhash.dropbox_client import DropboxError

    try:
        result = asyncio.run(_verify(authority, path, local))
    except (DropboxError, httpx.HTTPError) as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    if result.matches:
        console.print(f"[green]OK[/green] {path}  {result.actual}")
        return

    console.print(f"[red]MISMATCH[/red] {path}")
    console.print(f"  expected: {result.expected}")
    console.print(f"  actual:   {result.actual}")
    sys.exit(1)


def _human_size(nbytes: int) -> str:
    """Convert bytes to a human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if nbytes < 1024:
            return f"{nbytes:.1f} {unit}"
        nbytes /= 1024  # type: ignore[assignment]
    return f"{nbytes:.1f} TB"
