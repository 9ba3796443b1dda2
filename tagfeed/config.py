"""Configuration management for tagfeed."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class FetchConfig:
    """Configuration for the fetch scheduler and HTTP transport."""

    max_connections: int = 6
    timeout: int = 30
    user_agent: str = "tagfeed/1.0 (Feed Aggregator)"


@dataclass
class StoreConfig:
    """Configuration for newly ingested entries."""

    initial_tags: list[str] = field(default_factory=lambda: ["unread"])


@dataclass
class ArchiveConfig:
    """Configuration for store persistence."""

    backend: str = "json"
    path: str = "~/.tagfeed/store.json"
    table_name: str = "tagfeed-entries"
    region: str = "us-east-1"


def _split_tags(value: str) -> list[str]:
    return [tag.strip() for tag in value.split(",") if tag.strip()]


class Config:
    """Main configuration manager."""

    # Default feeds file path
    FEEDS_FILE = "feeds.json"

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.feeds_file = os.getenv("TAGFEED_FEEDS_FILE", self.FEEDS_FILE)
        self.max_connections = int(os.getenv("TAGFEED_MAX_CONNECTIONS", "6"))
        self.timeout = int(os.getenv("TAGFEED_TIMEOUT", "30"))
        self.initial_tags = _split_tags(os.getenv("TAGFEED_INITIAL_TAGS", "unread"))
        self.archive_backend = os.getenv("TAGFEED_ARCHIVE_BACKEND", "json")
        self.archive_path = os.getenv("TAGFEED_ARCHIVE_PATH", "~/.tagfeed/store.json")
        self.dynamodb_table = os.getenv("TAGFEED_DYNAMODB_TABLE", "tagfeed-entries")
        self.aws_region = os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        if self.max_connections < 1:
            raise ValueError("TAGFEED_MAX_CONNECTIONS must be at least 1")

    def _load_feeds(self) -> list[dict]:
        feeds_file = Path(self.feeds_file).expanduser()
        if not feeds_file.exists():
            raise FileNotFoundError(f"Feeds file not found: {self.feeds_file}")

        try:
            with open(feeds_file, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in feeds file: {e}") from e

        feeds = [
            feed
            for feed in data.get("feeds", [])
            if feed.get("enabled", True) and "url" in feed
        ]
        if not feeds:
            raise ValueError(f"No enabled feeds found in {self.feeds_file}")
        return feeds

    def get_feed_urls(self) -> list[str]:
        """Get enabled feed URLs from the feeds file, in file order."""
        return [feed["url"] for feed in self._load_feeds()]

    def get_feed_tags(self) -> dict[str, list[str]]:
        """Get the extra tags configured per feed URL."""
        return {
            feed["url"]: list(feed["tags"])
            for feed in self._load_feeds()
            if feed.get("tags")
        }

    def get_fetch_config(self) -> FetchConfig:
        """Get fetch configuration."""
        return FetchConfig(max_connections=self.max_connections, timeout=self.timeout)

    def get_store_config(self) -> StoreConfig:
        """Get store configuration."""
        return StoreConfig(initial_tags=list(self.initial_tags))

    def get_archive_config(self) -> ArchiveConfig:
        """Get archive configuration."""
        return ArchiveConfig(
            backend=self.archive_backend,
            path=self.archive_path,
            table_name=self.dynamodb_table,
            region=self.aws_region,
        )
