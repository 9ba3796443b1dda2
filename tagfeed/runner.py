"""One complete update cycle: load, fetch every feed, merge, save."""

from datetime import UTC, datetime
from typing import Any

from .archive import open_archive
from .config import Config
from .hooks import feed_tagger
from .logging_config import create_execution_logger
from .scheduler import FetchScheduler, HttpTransport, Transport
from .store import Store
from .updater import FeedUpdater


def run_update(
    config: Config | None = None,
    archive=None,
    transport: Transport | None = None,
    wait_timeout: float | None = None,
) -> dict[str, Any]:
    """
    Run an update cycle over every configured feed.

    Feeds that fail are counted and reported; they never stop the cycle.

    Args:
        config: Configuration (read from the environment when omitted)
        archive: Persistence backend (built from config when omitted)
        transport: Fetch transport (HTTP when omitted)
        wait_timeout: Seconds to wait for outstanding fetches, None for no limit

    Returns:
        Dictionary with status, execution id, summary line and metrics
    """
    execution_id = f"update_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    main_logger = create_execution_logger("main", execution_id)
    main_logger.log_execution_start()

    metrics: dict[str, Any] = {
        "feeds_configured": 0,
        "feeds_updated": 0,
        "feeds_failed": 0,
        "new_entries": 0,
        "entries_total": 0,
        "errors": [],
    }

    try:
        if config is None:
            config = Config()
        main_logger.info("Configuration initialized")

        feed_urls = config.get_feed_urls()
        metrics["feeds_configured"] = len(feed_urls)
        fetch_config = config.get_fetch_config()

        store = Store(
            hooks=[feed_tagger(config.get_feed_tags())], execution_id=execution_id
        )
        if archive is None:
            archive = open_archive(config.get_archive_config(), execution_id)
        archive.load(store)

        if transport is None:
            transport = HttpTransport(fetch_config.timeout, fetch_config.user_agent)
        scheduler = FetchScheduler(
            transport, fetch_config.max_connections, execution_id=execution_id
        )
        updater = FeedUpdater(
            store,
            scheduler,
            feed_urls,
            config.get_store_config().initial_tags,
            execution_id=execution_id,
        )

        updater.update_all()
        idle = scheduler.join(wait_timeout)
        scheduler.shutdown(wait=idle)
        if not idle:
            main_logger.warning(
                "Timed out waiting for feeds",
                in_flight=scheduler.in_flight_count,
                waiting=scheduler.waiting_count,
            )

        archive.save(store)

        metrics.update(updater.report.as_dict())
        metrics["entries_total"] = store.entry_count()
        summary = updater.report.summary()

        main_logger.log_metrics(metrics)
        main_logger.log_execution_end(success=True, metrics=metrics)

        return {
            "status": "ok",
            "execution_id": execution_id,
            "summary": summary,
            "metrics": metrics,
        }

    except Exception as e:
        error_msg = f"Critical error during update: {e}"
        main_logger.error(error_msg, error=str(e))
        metrics["errors"].append(error_msg)
        main_logger.log_execution_end(success=False, metrics=metrics, error=error_msg)

        return {
            "status": "error",
            "execution_id": execution_id,
            "summary": error_msg,
            "metrics": metrics,
        }
