"""Atom/RSS normalization for tagfeed.

Turns a parsed feed document into canonical Entry records. Nothing in this
module touches the network or the store.
"""

import io
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, timezone

import feedparser
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .errors import DateParseFailure, UnknownFormat
from .logging_config import ExecutionLogger, create_execution_logger
from .models import UNKNOWN_DATE, Entry, format_date

ATOM = "atom"
RSS = "rss"

# Tried in order; the first one that parses wins.
DATE_FIELDS = ("published", "updated", "created")

# Timezone abbreviations for date parsing
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": UTC,
    "UTC": UTC,
    "Z": UTC,
    "BST": timezone(timedelta(hours=1)),
}

_BLANK_RUN = re.compile(r"[\n\r\t\f\v]+")


@dataclass
class NormalizedFeed:
    """Result of normalizing one feed document."""

    format: str
    title: str
    entries: list[Entry] = field(default_factory=list)


def parse_document(body: bytes):
    """Parse a raw response body into a feedparser document."""
    return feedparser.parse(io.BytesIO(body))


def classify(document, feed_url: str = "") -> str:
    """Classify a parsed document as Atom or RSS by its root element.

    Raises:
        UnknownFormat: If the root is neither an Atom feed nor an RSS/RDF channel
    """
    version = document.get("version") or ""
    if version.startswith("atom"):
        return ATOM
    if version.startswith("rss"):
        return RSS
    raise UnknownFormat(feed_url, version)


def clean_text(text: str | None) -> str:
    """Strip surrounding whitespace and collapse newline/tab runs to one space."""
    if not text:
        return ""
    return _BLANK_RUN.sub(" ", text.strip())


def parse_date(value: str) -> datetime:
    """Parse a feed date string into a UTC datetime.

    Naive results are taken to be UTC.

    Raises:
        DateParseFailure: If the string is not a recognizable date
    """
    try:
        parsed = date_parser.parse(value, tzinfos=TZINFOS)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        # Offsets near year 1 or 9999 can push the UTC value out of range.
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError, TypeError) as e:
        raise DateParseFailure(f"Unparseable date {value!r}: {e}") from e


def _field_date(raw_entry, name: str) -> datetime | None:
    # Membership first: feedparser aliases a missing "updated" to "published".
    value = raw_entry.get(name) if name in raw_entry else None
    struct_name = f"{name}_parsed"
    struct = raw_entry.get(struct_name) if struct_name in raw_entry else None
    if not value and not struct:
        return None

    if value:
        try:
            return parse_date(value)
        except DateParseFailure:
            if not struct:
                raise

    try:
        return datetime(*struct[:6], tzinfo=UTC)
    except (TypeError, ValueError) as e:
        raise DateParseFailure(f"Invalid {name} date {value!r}") from e


def normalize_date(raw_entry, logger: ExecutionLogger | None = None) -> str:
    """Pick and normalize the best available date of a feed entry.

    Returns UNKNOWN_DATE when no date field is present or parseable.
    """
    for name in DATE_FIELDS:
        try:
            parsed = _field_date(raw_entry, name)
        except DateParseFailure as e:
            if logger:
                logger.debug(f"Skipping {name} date: {e}")
            continue
        if parsed is not None:
            return format_date(parsed)
    return UNKNOWN_DATE


def _atom_link(raw_entry) -> str:
    links = raw_entry.get("links") or []
    for link in links:
        if link.get("rel") == "alternate" and link.get("href"):
            return link["href"]
    for link in links:
        if link.get("href"):
            return link["href"]
    return raw_entry.get("link") or ""


def _content_detail(raw_entry) -> dict:
    content = raw_entry.get("content")
    if content:
        return content[0]
    return raw_entry.get("summary_detail") or {"value": raw_entry.get("summary", "")}


def _atom_entry(raw_entry) -> tuple[str, str, str, str | None]:
    link = _atom_link(raw_entry)
    entry_id = raw_entry.get("id") or link
    detail = _content_detail(raw_entry)
    content_type = "html" if "html" in (detail.get("type") or "") else None
    return entry_id, link, detail.get("value", ""), content_type


def _rss_entry(raw_entry) -> tuple[str, str, str, str | None]:
    link = raw_entry.get("link") or ""
    entry_id = raw_entry.get("id") or link
    detail = _content_detail(raw_entry)
    return entry_id, link, detail.get("value", ""), None


def normalize(
    feed_url: str,
    document,
    initial_tags: Iterable[str] = ("unread",),
    logger: ExecutionLogger | None = None,
) -> NormalizedFeed:
    """Normalize a parsed Atom or RSS document into canonical entries.

    Args:
        feed_url: URL the document was fetched from
        document: Parsed feedparser document
        initial_tags: Tags every entry starts with
        logger: Optional execution logger for per-entry diagnostics

    Returns:
        NormalizedFeed with the feed title and entries in document order

    Raises:
        UnknownFormat: If the document is neither Atom nor RSS
    """
    if logger is None:
        logger = create_execution_logger("normalizer")

    kind = classify(document, feed_url)
    extract = _atom_entry if kind == ATOM else _rss_entry
    initial_tags = tuple(initial_tags)

    entries = []
    for raw_entry in document.get("entries", []):
        entry_id, link, content, content_type = extract(raw_entry)
        entry_id = clean_text(entry_id)
        if not entry_id:
            logger.warning(
                "Skipping entry without id or link",
                feed_url=feed_url,
                item_title=raw_entry.get("title", ""),
            )
            continue

        entries.append(
            Entry(
                id=entry_id,
                title=clean_text(raw_entry.get("title")),
                link=link,
                date=normalize_date(raw_entry, logger),
                content=clean_text(content),
                content_type=content_type,
                feed_url=feed_url,
                tags=set(initial_tags),
            )
        )

    feed_title = clean_text(document.get("feed", {}).get("title"))
    logger.log_feed_processing(feed_url, len(entries))
    return NormalizedFeed(format=kind, title=feed_title, entries=entries)


def plain_text(content: str | None) -> str:
    """Remove markup from content and normalize whitespace.

    Args:
        content: Raw content that may contain HTML

    Returns:
        Text content without tags, on a single line
    """
    if not content:
        return ""

    if "<" not in content and ">" not in content:
        return " ".join(content.split())

    soup = BeautifulSoup(content, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator=" ")
    return " ".join(text.split())
