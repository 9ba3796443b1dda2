"""Entry/feed store for tagfeed."""

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from operator import attrgetter

from .errors import HookFailure
from .logging_config import create_execution_logger
from .models import Entry, Feed

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

NewEntryHook = Callable[[Entry], None]


@dataclass
class MergeStats:
    """Outcome of merging one parsed batch into a feed."""

    feed_url: str
    new_entries: int = 0
    updated_entries: int = 0
    hook_failures: list[HookFailure] = field(default_factory=list)


class Store:
    """In-memory feeds and entries, keyed by feed URL and entry id.

    The store owns every Feed and Entry. New entries only come in through
    merge(); callers may edit tags on stored entries with tag()/untag().
    All access to the feed mapping and the last-update timestamp is
    serialized by one re-entrant lock, so hooks may call back into the store.
    """

    def __init__(
        self,
        hooks: Iterable[NewEntryHook] | None = None,
        execution_id: str | None = None,
    ):
        self.new_entry_hooks: list[NewEntryHook] = list(hooks or [])
        self.logger = create_execution_logger("store", execution_id)
        self._feeds: dict[str, Feed] = {}
        self._last_update = EPOCH
        self._lock = threading.RLock()

    def get_or_create(self, feed_url: str) -> Feed:
        """Return the feed for a URL, creating an empty one on first use."""
        with self._lock:
            feed = self._feeds.get(feed_url)
            if feed is None:
                feed = Feed(url=feed_url)
                self._feeds[feed_url] = feed
                self.logger.debug("Created feed", feed_url=feed_url)
            return feed

    def get_feed(self, feed_url: str) -> Feed | None:
        with self._lock:
            return self._feeds.get(feed_url)

    def get_entry(self, feed_url: str, entry_id: str) -> Entry | None:
        with self._lock:
            feed = self._feeds.get(feed_url)
            return feed.entries.get(entry_id) if feed else None

    def feed_urls(self) -> list[str]:
        with self._lock:
            return list(self._feeds)

    def entry_count(self) -> int:
        with self._lock:
            return sum(len(feed.entries) for feed in self._feeds.values())

    def merge(
        self,
        feed_url: str,
        entries: Iterable[Entry],
        title: str | None = None,
    ) -> MergeStats:
        """Merge freshly parsed entries into a feed.

        Known ids keep their stored tags and take every other field from the
        new parse. Unknown ids are passed through the new-entry hooks before
        insertion. The batch is staged first and committed as a whole, after
        which the last-update timestamp advances.

        Args:
            feed_url: URL of the feed the entries belong to
            entries: Entries in the order the normalizer emitted them
            title: Feed title to record alongside the entries

        Returns:
            MergeStats with new/updated counts and any hook failures
        """
        stats = MergeStats(feed_url=feed_url)

        with self._lock:
            existing = self._feeds.get(feed_url)
            stored = existing.entries if existing else {}
            staged: dict[str, Entry] = {}

            for entry in entries:
                previous = staged.get(entry.id) or stored.get(entry.id)
                if previous is not None:
                    entry.tags = set(previous.tags)
                    stats.updated_entries += 1
                else:
                    self._run_hooks(entry, stats)
                    stats.new_entries += 1
                staged[entry.id] = entry

            feed = self.get_or_create(feed_url)
            if title is not None:
                feed.title = title
            for entry_id, entry in staged.items():
                entry.feed_url = feed_url
                entry.feed = feed
                feed.entries[entry_id] = entry
            self._last_update = datetime.now(UTC)

        self.logger.info(
            "Merged feed entries",
            feed_url=feed_url,
            new_entries=stats.new_entries,
            updated_entries=stats.updated_entries,
            hook_failures=len(stats.hook_failures),
        )
        return stats

    def _run_hooks(self, entry: Entry, stats: MergeStats) -> None:
        for hook in self.new_entry_hooks:
            try:
                hook(entry)
            except Exception as e:
                failure = HookFailure(entry.id, hook, e)
                self.logger.error(
                    str(failure),
                    feed_url=stats.feed_url,
                    entry_id=entry.id,
                    error=str(e),
                )
                stats.hook_failures.append(failure)

    def all_entries(
        self, feed_url: str | None = None, old_first: bool = False
    ) -> list[Entry]:
        """Return entries of one feed, or of every feed, sorted by date.

        Newest first unless old_first is set. Entries with equal dates keep
        their insertion order.
        """
        with self._lock:
            if feed_url is None:
                feeds = list(self._feeds.values())
            else:
                feed = self._feeds.get(feed_url)
                feeds = [feed] if feed else []
            entries = [entry for feed in feeds for entry in feed.entries.values()]

        return sorted(entries, key=attrgetter("date"), reverse=not old_first)

    def last_update(self) -> datetime:
        """Time of the most recent merge, or the Unix epoch if none yet."""
        with self._lock:
            return self._last_update

    def tag(self, entries: Entry | Iterable[Entry], *tags: str) -> None:
        """Add tags to stored entries."""
        with self._lock:
            for entry in _as_entries(entries):
                entry.tags.update(tags)

    def untag(self, entries: Entry | Iterable[Entry], *tags: str) -> None:
        """Remove tags from stored entries."""
        with self._lock:
            for entry in _as_entries(entries):
                entry.tags.difference_update(tags)

    def restore(self, feeds: Iterable[Feed], last_update: datetime) -> None:
        """Replace the store contents with previously saved feeds."""
        with self._lock:
            self._feeds = {}
            for feed in feeds:
                for entry in feed.entries.values():
                    entry.feed = feed
                self._feeds[feed.url] = feed
            self._last_update = last_update


def _as_entries(entries: Entry | Iterable[Entry]) -> list[Entry]:
    if isinstance(entries, Entry):
        return [entries]
    return list(entries)
