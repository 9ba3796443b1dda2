"""Tag filter queries over stored entries.

A filter is a whitespace separated list of terms, all of which must hold:

    +tag        entry has the tag
    -tag        entry does not have the tag
    @N-days-ago entry is newer than the given age (minute/hour/day/week/month/year)
    #N          keep at most N entries
    =pattern    feed URL or feed title matches the regular expression

The empty filter matches every entry.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from .errors import FilterSyntaxError
from .models import Entry, format_date

_AGE = re.compile(r"^(\d+)-?(minute|hour|day|week|month|year)s?-ago$")

_UNITS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


@dataclass
class FilterSpec:
    """Parsed form of a filter string."""

    must_have: set[str] = field(default_factory=set)
    must_not_have: set[str] = field(default_factory=set)
    max_age: timedelta | None = None
    limit: int | None = None
    feeds: list[re.Pattern] = field(default_factory=list)


def _parse_age(term: str) -> timedelta:
    match = _AGE.match(term)
    if not match:
        raise FilterSyntaxError(f"Invalid age term: @{term}")
    count, unit = match.groups()
    try:
        return int(count) * _UNITS[unit]
    except OverflowError as e:
        raise FilterSyntaxError(f"Age out of range: @{term}") from e


def age_cutoff(max_age: timedelta, now: datetime | None = None) -> str:
    """Normalized date string max_age before now.

    Ages reaching past year 1 give the earliest representable date.
    """
    try:
        return format_date((now or datetime.now(UTC)) - max_age)
    except OverflowError:
        return format_date(datetime.min)


def parse_filter(text: str) -> FilterSpec:
    """Parse a filter string into a FilterSpec.

    Raises:
        FilterSyntaxError: On a term with an unknown prefix or bad argument
    """
    spec = FilterSpec()
    for term in (text or "").split():
        prefix, rest = term[0], term[1:]
        if prefix == "+":
            if rest:
                spec.must_have.add(rest)
        elif prefix == "-":
            if rest:
                spec.must_not_have.add(rest)
        elif prefix == "@":
            spec.max_age = _parse_age(rest)
        elif prefix == "#":
            if not rest.isdigit():
                raise FilterSyntaxError(f"Invalid limit term: {term}")
            spec.limit = int(rest)
        elif prefix == "=":
            try:
                spec.feeds.append(re.compile(rest, re.IGNORECASE))
            except re.error as e:
                raise FilterSyntaxError(f"Invalid feed pattern {rest!r}: {e}") from e
        else:
            raise FilterSyntaxError(f"Unknown filter term: {term}")
    return spec


def _feed_matches(spec: FilterSpec, entry: Entry) -> bool:
    title = entry.feed.title if entry.feed is not None else ""
    return any(
        pattern.search(entry.feed_url) or (title and pattern.search(title))
        for pattern in spec.feeds
    )


def matches(spec: FilterSpec, entry: Entry, now: datetime | None = None) -> bool:
    """Check a single entry against a parsed filter (ignores the limit)."""
    if not spec.must_have <= entry.tags:
        return False
    if spec.must_not_have & entry.tags:
        return False
    if spec.max_age is not None:
        if entry.date < age_cutoff(spec.max_age, now):
            return False
    if spec.feeds and not _feed_matches(spec, entry):
        return False
    return True


def filter_entries(
    spec: FilterSpec | str,
    entries: Iterable[Entry],
    now: datetime | None = None,
) -> list[Entry]:
    """Keep the entries matching a filter, preserving their order."""
    if isinstance(spec, str):
        spec = parse_filter(spec)
    if now is None:
        now = datetime.now(UTC)

    selected = [entry for entry in entries if matches(spec, entry, now)]
    if spec.limit is not None:
        selected = selected[: spec.limit]
    return selected


def search(store, text: str, old_first: bool = False) -> list[Entry]:
    """Filter every stored entry, newest first unless old_first is set."""
    return filter_entries(text, store.all_entries(old_first=old_first))
