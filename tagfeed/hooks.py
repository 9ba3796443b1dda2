"""Ready-made new-entry hooks.

A hook is any callable taking the new Entry; it runs once, before the entry
is first stored, and may change the entry's tags in place.
"""

import re
from collections.abc import Callable, Iterable, Mapping
from datetime import timedelta

from .filter import age_cutoff
from .models import Entry


def make_tagger(
    feed: str | None = None,
    entry_title: str | None = None,
    add: Iterable[str] = (),
    remove: Iterable[str] = (),
    after: timedelta | None = None,
) -> Callable[[Entry], None]:
    """Build a hook that retags entries matching every given condition.

    Args:
        feed: Regular expression searched in the entry's feed URL
        entry_title: Regular expression searched in the entry title
        add: Tags to add
        remove: Tags to remove
        after: Only entries dated within this long before now
    """
    feed_re = re.compile(feed, re.IGNORECASE) if feed else None
    title_re = re.compile(entry_title, re.IGNORECASE) if entry_title else None
    add, remove = frozenset(add), frozenset(remove)

    def tagger(entry: Entry) -> None:
        if feed_re and not feed_re.search(entry.feed_url):
            return
        if title_re and not title_re.search(entry.title):
            return
        if after is not None and entry.date < age_cutoff(after):
            return
        entry.tags.update(add)
        entry.tags.difference_update(remove)

    return tagger


def feed_tagger(feed_tags: Mapping[str, Iterable[str]]) -> Callable[[Entry], None]:
    """Build a hook adding the configured per-feed tags to new entries."""
    tags_by_feed = {url: frozenset(tags) for url, tags in feed_tags.items()}

    def tag_by_feed(entry: Entry) -> None:
        entry.tags.update(tags_by_feed.get(entry.feed_url, ()))

    return tag_by_feed
