"""Feed update orchestration: fetch, normalize and merge each feed."""

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from .errors import TransportFailure
from .logging_config import create_execution_logger
from .normalize import normalize, parse_document
from .scheduler import FetchResult, FetchScheduler
from .store import MergeStats, Store

ErrorCallback = Callable[[str, Exception], None]


@dataclass
class UpdateReport:
    """Running per-feed tally of an update cycle, safe to share across threads."""

    feeds_updated: int = 0
    feeds_failed: int = 0
    new_entries: int = 0
    errors: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def record_success(self, stats: MergeStats) -> None:
        with self._lock:
            self.feeds_updated += 1
            self.new_entries += stats.new_entries

    def record_failure(self, feed_url: str, error: Exception) -> None:
        with self._lock:
            self.feeds_failed += 1
            self.errors.append(f"Failed to update feed {feed_url}: {error}")

    def summary(self) -> str:
        with self._lock:
            return f"{self.feeds_updated} feeds updated, {self.feeds_failed} failed"

    def as_dict(self) -> dict:
        with self._lock:
            return {
                "feeds_updated": self.feeds_updated,
                "feeds_failed": self.feeds_failed,
                "new_entries": self.new_entries,
                "errors": list(self.errors),
            }


class FeedUpdater:
    """Routes scheduler completions through the normalizer into the store.

    Each feed is its own failure boundary: a transport error, a bad status or
    an unrecognized document abandons that feed for the cycle without touching
    the store, and is reported through on_error and the report.
    """

    def __init__(
        self,
        store: Store,
        scheduler: FetchScheduler,
        feed_urls: Iterable[str],
        initial_tags: Iterable[str] = ("unread",),
        on_error: ErrorCallback | None = None,
        execution_id: str | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.feed_urls = list(feed_urls)
        self.initial_tags = tuple(initial_tags)
        self.on_error = on_error
        self.report = UpdateReport()
        self.logger = create_execution_logger("updater", execution_id)
        self._normalizer_logger = create_execution_logger(
            "normalizer", self.logger.execution_id
        )

    def update_all(self) -> None:
        """Queue a fetch for every configured feed and return immediately.

        Progress shows up as store.last_update() advancing.
        """
        self.logger.info(
            f"Updating {len(self.feed_urls)} feeds", feed_count=len(self.feed_urls)
        )
        for feed_url in self.feed_urls:
            self.update_feed(feed_url)

    def update_feed(self, feed_url: str) -> int:
        """Queue a fetch for one feed; returns the scheduler request id."""
        return self.scheduler.enqueue(feed_url, self.handle_result)

    def process(self, result: FetchResult) -> MergeStats:
        """Turn one fetch result into a store merge.

        Raises:
            TransportFailure: If the fetch failed or returned a non-2xx status
            UnknownFormat: If the body is neither Atom nor RSS
        """
        if not result.ok:
            raise result.error
        if not 200 <= result.status < 300:
            raise TransportFailure(
                result.url, f"HTTP status {result.status}", status=result.status
            )

        document = parse_document(result.body)
        normalized = normalize(
            result.url, document, self.initial_tags, logger=self._normalizer_logger
        )
        return self.store.merge(
            result.url, normalized.entries, title=normalized.title
        )

    def handle_result(self, result: FetchResult) -> None:
        """Completion callback used for every scheduled feed."""
        try:
            stats = self.process(result)
        except Exception as e:
            self.logger.error(
                f"Failed to update feed {result.url}: {e}",
                feed_url=result.url,
                error=str(e),
            )
            self.report.record_failure(result.url, e)
            if self.on_error is not None:
                self.on_error(result.url, e)
            return

        self.report.record_success(stats)
        self.logger.info(
            "Feed updated",
            feed_url=result.url,
            new_entries=stats.new_entries,
            updated_entries=stats.updated_entries,
        )
