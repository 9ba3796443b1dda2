"""Tagged feed aggregator: fetch Atom/RSS feeds into a taggable entry store."""

from .filter import filter_entries, parse_filter
from .models import Entry, Feed
from .scheduler import FetchScheduler, HttpTransport
from .store import Store
from .updater import FeedUpdater

__all__ = [
    "Entry",
    "Feed",
    "FeedUpdater",
    "FetchScheduler",
    "HttpTransport",
    "Store",
    "filter_entries",
    "parse_filter",
]
