"""Exception types for tagfeed."""


class TagfeedError(Exception):
    """Base class for all tagfeed errors."""


class TransportFailure(TagfeedError):
    """A feed could not be fetched (network error or non-success status)."""

    def __init__(self, url: str, message: str, status: int | None = None):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status = status


class UnknownFormat(TagfeedError):
    """The parsed document is neither Atom nor RSS."""

    def __init__(self, url: str, version: str = ""):
        detail = f" (detected {version!r})" if version else ""
        super().__init__(f"{url}: not an Atom or RSS document{detail}")
        self.url = url
        self.version = version


class DateParseFailure(TagfeedError, ValueError):
    """A single entry date could not be parsed."""


class HookFailure(TagfeedError):
    """A new-entry hook raised while processing an entry."""

    def __init__(self, entry_id: str, hook, cause: Exception):
        name = getattr(hook, "__name__", repr(hook))
        super().__init__(f"hook {name} failed for entry {entry_id}: {cause}")
        self.entry_id = entry_id
        self.hook = hook
        self.cause = cause


class FilterSyntaxError(TagfeedError, ValueError):
    """A filter term could not be understood."""


class ArchiveError(TagfeedError):
    """Loading or saving the store snapshot failed."""
