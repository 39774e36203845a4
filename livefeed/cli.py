"""CLI entry point for livefeed."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click


# Default config template
CONFIG_TEMPLATE = """\
database: .livefeed/livefeed.db

lazyload:
  initial_entries: 20
  entries_per_page: 20  # non-positive falls back to 20
  max_entries_per_page: 100

key_events:
  limit: 0  # 0 = no limit
  marker: /key
  rendered_class: type-key

paging:
  max_entries: 500  # page size for --all
"""

_PROJECT_ROOT = click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)


def _open_service(project_root: str) -> Any:
    """Load config and build a FeedService over the configured store."""
    from livefeed.config import ConfigError, load_config, resolve_db_path
    from livefeed.feed import FeedService
    from livefeed.store.db import EntryStore

    root = Path(project_root)
    try:
        config = load_config(root)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    store = EntryStore(resolve_db_path(config, root))
    return FeedService(store, config)


def _fail(exc: Exception) -> click.ClickException:
    return click.ClickException(str(exc))


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


def _trim(text: str, words: int = 20) -> str:
    parts = text.split()
    if len(parts) <= words:
        return " ".join(parts)
    return " ".join(parts[:words]) + "…"


@click.group()
def cli() -> None:
    """Livefeed: append-only live event feeds."""


@cli.command()
@_PROJECT_ROOT
def init(project_root: str) -> None:
    """Initialize .livefeed/ directory with config and an empty store."""
    root = Path(project_root)
    livefeed_dir = root / ".livefeed"

    if livefeed_dir.exists():
        click.echo(f".livefeed/ already exists at {livefeed_dir}")
        raise SystemExit(1)

    livefeed_dir.mkdir(parents=True)
    config_path = livefeed_dir / "config.yaml"
    config_path.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created {config_path}")

    # Load config through the standard path to validate it
    from livefeed.config import load_config, resolve_db_path
    from livefeed.store.db import EntryStore

    config = load_config(root)
    db_path = resolve_db_path(config, root)
    EntryStore(db_path)
    click.echo(f"Created {db_path}")


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.argument("content")
@click.option("--author-id", type=int, default=None, help="Author user id.")
@click.option("--author-name", default="", help="Author display name.")
@click.option("--author-email", default="", help="Author email.")
@click.option("--author-url", default="", help="Author URL.")
@click.option("--contributor", "contributors", type=int, multiple=True,
              help="Contributor user id (repeatable).")
def add(
    project_root: str,
    feed_id: int,
    content: str,
    author_id: int | None,
    author_name: str,
    author_email: str,
    author_url: str,
    contributors: tuple[int, ...],
) -> None:
    """Append a new entry to a feed."""
    from livefeed.entry import Author
    from livefeed.store.db import StoreError

    service = _open_service(project_root)
    author = None
    if author_id is not None:
        author = Author(id=author_id, name=author_name, email=author_email, url=author_url)
    try:
        entry = service.create_entry(feed_id, content, author, list(contributors) or None)
    except (StoreError, ValueError) as exc:
        raise _fail(exc) from exc
    click.echo(f"Added entry {entry.id} to feed {feed_id}")


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.argument("entry_id", type=int)
@click.argument("content")
def edit(project_root: str, feed_id: int, entry_id: int, content: str) -> None:
    """Update an entry's content."""
    from livefeed.store.db import StoreError

    service = _open_service(project_root)
    try:
        entry = service.update_entry(feed_id, entry_id, content)
    except (StoreError, ValueError) as exc:
        raise _fail(exc) from exc
    click.echo(f"Updated entry {entry_id} (notification {entry.id})")


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.argument("entry_id", type=int)
def remove(project_root: str, feed_id: int, entry_id: int) -> None:
    """Delete an entry, leaving a tombstone."""
    from livefeed.store.db import StoreError

    service = _open_service(project_root)
    try:
        entry = service.delete_entry(feed_id, entry_id)
    except (StoreError, ValueError) as exc:
        raise _fail(exc) from exc
    click.echo(f"Deleted entry {entry_id} (tombstone {entry.id})")


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.option("--key-events", is_flag=True, help="Only list key events.")
@click.option("--limit", type=int, default=None,
              help="Maximum entries to list (0 = all). "
                   "Defaults to 20, or key_events.limit with --key-events.")
@click.option("--format", "fmt", type=click.Choice(["table", "ids", "json"]),
              default="table", show_default=True)
def entries(
    project_root: str, feed_id: int, key_events: bool, limit: int | None, fmt: str,
) -> None:
    """List the resolved entries of a feed, newest first."""
    service = _open_service(project_root)
    if key_events:
        found = service.get_key_events(feed_id, limit=limit)
    else:
        found = service.get_all(feed_id, limit=20 if limit is None else limit)

    if not found:
        click.echo("No key events found." if key_events else "No entries found.")
        return

    if fmt == "ids":
        click.echo(" ".join(str(entry_id) for entry_id in found))
        return
    if fmt == "json":
        _echo_json(service.views(found))
        return

    for entry in found.values():
        author = entry.author.name if entry.author else "-"
        key = "" if key_events else ("  [key]" if service.is_key_event(entry) else "")
        click.echo(f"{entry.id:>6}  {entry.created_at}  {author}  {_trim(entry.content)}{key}")


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.option("--page", type=int, default=0, help="Page number (1-indexed).")
@click.option("--last-known", default=None, help="Resume cursor '<id>-<timestamp>'.")
@click.option("--jump-to", type=int, default=None, help="Land on the page holding this entry.")
@click.option("--all", "all_entries", is_flag=True, help="Use the maximum page size.")
def page(
    project_root: str,
    feed_id: int,
    page: int,
    last_known: str | None,
    jump_to: int | None,
    all_entries: bool,
) -> None:
    """Print one page of the compacted feed as JSON."""
    service = _open_service(project_root)
    _echo_json(service.get_entries_paged(
        feed_id,
        page=page,
        last_known_entry=last_known,
        jump_to_id=jump_to,
        all_entries=all_entries,
    ))


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.argument("start", type=int)
@click.argument("end", type=int)
def poll(project_root: str, feed_id: int, start: int, end: int) -> None:
    """Print the delta of entries created between START and END as JSON."""
    service = _open_service(project_root)
    _echo_json(service.get_entries_by_time(feed_id, start, end))


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.option("--max", "max_timestamp", type=int, default=0,
              help="Exclusive upper timestamp (0 = open).")
@click.option("--min", "min_timestamp", type=int, default=0,
              help="Exclusive lower timestamp (0 = open).")
def lazyload(project_root: str, feed_id: int, max_timestamp: int, min_timestamp: int) -> None:
    """Print entries between two rendered anchors as JSON."""
    service = _open_service(project_root)
    _echo_json(service.get_lazyload_entries(feed_id, max_timestamp, min_timestamp))


@cli.command()
@_PROJECT_ROOT
@click.argument("feed_id", type=int)
@click.argument("entry_id", type=int)
def show(project_root: str, feed_id: int, entry_id: int) -> None:
    """Print a single entry with its neighbour timestamps as JSON."""
    service = _open_service(project_root)
    result = service.get_single_entry(feed_id, entry_id)
    if not result["entries"]:
        raise click.ClickException(f"Entry {entry_id} not visible in feed {feed_id}")
    _echo_json(result)


@cli.command()
@_PROJECT_ROOT
@click.option("--feed", "feed_ids", type=int, multiple=True,
              help="Only repair this feed (repeatable). Default: all feeds.")
@click.option("--dry-run", is_flag=True, help="Report corrections without writing.")
def repair(project_root: str, feed_ids: tuple[int, ...], dry_run: bool) -> None:
    """Restore replace pointers and edited content across feeds."""
    import logging

    from livefeed.repair import repair_all

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    service = _open_service(project_root)
    store = service.store

    if dry_run:
        click.echo("Running in dry-run mode. No changes will be made.\n")

    targets = list(feed_ids) if feed_ids else store.list_feeds()
    if not targets:
        click.echo("No feeds found.")
        return
    click.echo(f"Found {len(targets)} feed(s).")

    with click.progressbar(length=len(targets), label="Repairing feeds") as bar:
        totals = repair_all(
            store,
            dry_run=dry_run,
            feed_ids=targets,
            on_feed=lambda _feed_id, _report: bar.update(1),
        )

    click.echo(f"\nEntries corrected: {totals.entries_corrected}")
    click.echo(f"Content items replaced: {totals.content_replaced}")
    if dry_run:
        click.echo("Dry run completed. Re-run without --dry-run to apply changes.")
    else:
        click.echo("Repair complete.")


@cli.command()
@_PROJECT_ROOT
def stats(project_root: str) -> None:
    """Show store-wide feed statistics."""
    service = _open_service(project_root)
    info = service.stats()
    click.echo(f"Feeds: {info['feeds']}")
    click.echo(f"Entries: {info['entries']}")
    click.echo(f"Key events: {info['key_events']}")
    click.echo(f"Unique authors: {info['authors']}")
