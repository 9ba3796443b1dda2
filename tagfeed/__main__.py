"""Command line entry point for tagfeed.

python -m tagfeed update
python -m tagfeed list -unread +starred
python -m tagfeed tag FEED_URL ENTRY_ID --remove unread
"""

import sys

import click

from .archive import open_archive
from .config import Config
from .errors import FilterSyntaxError
from .filter import search
from .logging_config import setup_structured_logging
from .normalize import plain_text
from .runner import run_update
from .store import Store


def _load_store(config: Config) -> tuple[Store, object]:
    store = Store()
    archive = open_archive(config.get_archive_config())
    archive.load(store)
    return store, archive


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: $LOG_LEVEL)")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Fetch and query tagged Atom/RSS entries."""
    config = Config()
    setup_structured_logging(log_level or config.log_level)
    ctx.obj = config


@cli.command()
@click.option("--timeout", type=float, default=None, help="Seconds to wait for feeds")
@click.pass_obj
def update(config: Config, timeout: float | None) -> None:
    """Fetch every configured feed and merge new entries."""
    result = run_update(config, wait_timeout=timeout)
    click.echo(result["summary"])
    for error in result["metrics"]["errors"]:
        click.echo(f"  {error}", err=True)
    if result["status"] != "ok":
        sys.exit(1)


@cli.command("list", context_settings={"ignore_unknown_options": True})
@click.argument("terms", nargs=-1)
@click.option("--old-first", is_flag=True, help="Oldest entries first")
@click.option("--preview", is_flag=True, help="Show the start of each entry body")
@click.pass_obj
def list_entries(
    config: Config, terms: tuple[str, ...], old_first: bool, preview: bool
) -> None:
    """List stored entries matching the filter TERMS (default "+unread").

    Terms may be passed separately or quoted together; -tag terms are not
    mistaken for options.
    """
    filter_text = " ".join(terms) if terms else "+unread"
    store, _ = _load_store(config)
    try:
        entries = search(store, filter_text, old_first=old_first)
    except FilterSyntaxError as e:
        raise click.BadParameter(str(e), param_hint="TERMS") from e

    for entry in entries:
        source = entry.feed.title if entry.feed and entry.feed.title else entry.feed_url
        tags = ",".join(sorted(entry.tags))
        click.echo(f"{entry.date[:10]}  {entry.title}  [{source}]  ({tags})")
        if preview:
            click.echo(f"    {plain_text(entry.content)[:120]}")


@cli.command()
@click.argument("feed_url")
@click.argument("entry_id")
@click.option("--add", "-a", multiple=True, help="Tag to add (repeatable)")
@click.option("--remove", "-r", multiple=True, help="Tag to remove (repeatable)")
@click.pass_obj
def tag(
    config: Config,
    feed_url: str,
    entry_id: str,
    add: tuple[str, ...],
    remove: tuple[str, ...],
) -> None:
    """Add or remove tags on one stored entry."""
    store, archive = _load_store(config)
    entry = store.get_entry(feed_url, entry_id)
    if entry is None:
        raise click.ClickException(f"No entry {entry_id!r} in feed {feed_url}")

    store.tag(entry, *add)
    store.untag(entry, *remove)
    archive.save(store)
    click.echo(" ".join(sorted(entry.tags)))


if __name__ == "__main__":
    cli()
