"""Data models for tagfeed."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

# Lexical order of strings in this format equals chronological order.
# format_date pads the year itself; strftime("%Y") does not on every platform.
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Stored for entries whose source date is missing or unparseable.
UNKNOWN_DATE = "1970-01-01T00:00:00Z"


def format_date(value: datetime) -> str:
    """Render a datetime as a normalized UTC timestamp string.

    Naive datetimes are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return f"{value.year:04d}-{value:%m-%dT%H:%M:%S}Z"


@dataclass
class Entry:
    """A single normalized item from a feed."""

    id: str
    title: str
    link: str
    date: str
    content: str
    feed_url: str
    content_type: str | None = None  # "html" for rich markup, None for plain
    tags: set[str] = field(default_factory=set)
    feed: "Feed | None" = field(default=None, repr=False, compare=False)


@dataclass
class Feed:
    """A remote feed and the entries collected from it."""

    url: str
    title: str = ""
    entries: dict[str, Entry] = field(default_factory=dict, repr=False)
