"""Saving and restoring the entry store."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import ClientError

from .config import ArchiveConfig
from .errors import ArchiveError
from .logging_config import create_execution_logger
from .models import Entry, Feed
from .store import Store

SNAPSHOT_VERSION = 1

ENTRY_FIELDS = ("id", "title", "link", "date", "content", "content_type")


def _entry_to_dict(entry: Entry) -> dict[str, Any]:
    data = {name: getattr(entry, name) for name in ENTRY_FIELDS}
    data["tags"] = sorted(entry.tags)
    return data


def snapshot(store: Store) -> dict[str, Any]:
    """Plain-data copy of the store, suitable for JSON.

    Take snapshots while no update is running.
    """
    feeds = []
    for url in store.feed_urls():
        feed = store.get_feed(url)
        feeds.append(
            {
                "url": feed.url,
                "title": feed.title,
                "entries": [_entry_to_dict(e) for e in list(feed.entries.values())],
            }
        )
    return {
        "version": SNAPSHOT_VERSION,
        "last_update": store.last_update().isoformat(),
        "feeds": feeds,
    }


def restore(store: Store, data: dict[str, Any]) -> None:
    """Replace the store contents with a snapshot.

    Raises:
        ArchiveError: If the snapshot is malformed or from another version
    """
    if data.get("version") != SNAPSHOT_VERSION:
        raise ArchiveError(f"Unsupported snapshot version: {data.get('version')!r}")

    try:
        feeds = []
        for feed_data in data["feeds"]:
            feed = Feed(url=feed_data["url"], title=feed_data.get("title", ""))
            for item in feed_data["entries"]:
                entry = Entry(
                    id=item["id"],
                    title=item.get("title", ""),
                    link=item.get("link", ""),
                    date=item["date"],
                    content=item.get("content", ""),
                    content_type=item.get("content_type"),
                    feed_url=feed.url,
                    tags=set(item.get("tags", [])),
                )
                feed.entries[entry.id] = entry
            feeds.append(feed)
        last_update = datetime.fromisoformat(data["last_update"])
    except (KeyError, TypeError, ValueError) as e:
        raise ArchiveError(f"Malformed snapshot: {e}") from e

    store.restore(feeds, last_update)


class JsonArchive:
    """Keeps the store in a single JSON file."""

    def __init__(self, path: str | Path, execution_id: str | None = None):
        self.path = Path(path).expanduser()
        self.logger = create_execution_logger("archive", execution_id)

    def load(self, store: Store) -> bool:
        """Load the archive into the store.

        Returns:
            False if there is no archive file yet, True otherwise
        """
        if not self.path.exists():
            self.logger.info("No archive found", archive_path=str(self.path))
            return False

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ArchiveError(f"Cannot read archive {self.path}: {e}") from e

        restore(store, data)
        self.logger.info(
            "Archive loaded",
            archive_path=str(self.path),
            entries_count=store.entry_count(),
        )
        return True

    def save(self, store: Store) -> None:
        """Write the store to the archive file, replacing it atomically."""
        data = snapshot(store)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=1)
            tmp_path.replace(self.path)
        except OSError as e:
            raise ArchiveError(f"Cannot write archive {self.path}: {e}") from e

        self.logger.info(
            "Archive saved",
            archive_path=str(self.path),
            entries_count=store.entry_count(),
        )


class DynamoDBArchive:
    """Keeps the store in a DynamoDB table, one item per feed and per entry."""

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        """Initialize the archive with DynamoDB configuration.

        Args:
            table_name: Name of the DynamoDB table (partition key "item_id")
            aws_region: AWS region for DynamoDB client
            execution_id: Execution ID for logging context
        """
        self.table_name = table_name
        self.aws_region = aws_region
        self.logger = create_execution_logger("archive", execution_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

        self.logger.info(
            "DynamoDBArchive initialized", table_name=table_name, aws_region=aws_region
        )

    def save(self, store: Store) -> None:
        """Write every feed and entry of the store to the table."""
        data = snapshot(store)
        count = 0
        try:
            with self.table.batch_writer(overwrite_by_pkeys=["item_id"]) as batch:
                batch.put_item(
                    Item={
                        "item_id": "meta",
                        "kind": "meta",
                        "version": data["version"],
                        "last_update": data["last_update"],
                    }
                )
                for feed in data["feeds"]:
                    batch.put_item(
                        Item={
                            "item_id": f"feed#{feed['url']}",
                            "kind": "feed",
                            "url": feed["url"],
                            "title": feed["title"],
                        }
                    )
                    for position, entry in enumerate(feed["entries"]):
                        batch.put_item(
                            Item={
                                "item_id": f"entry#{feed['url']}#{entry['id']}",
                                "kind": "entry",
                                "feed_url": feed["url"],
                                "position": position,
                                **entry,
                            }
                        )
                        count += 1
        except ClientError as e:
            self.logger.error(
                f"Error saving store to {self.table_name}: {e}",
                table_name=self.table_name,
                error=str(e),
            )
            raise ArchiveError(f"Failed to save store to {self.table_name}") from e

        self.logger.info(
            "Stored entries in DynamoDB", table_name=self.table_name, entries_count=count
        )

    def _scan(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {}
        while True:
            response = self.table.scan(**kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                return items
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def load(self, store: Store) -> bool:
        """Load the table contents into the store.

        Returns:
            False if the table holds no saved store, True otherwise
        """
        try:
            items = self._scan()
        except ClientError as e:
            self.logger.error(
                f"Error loading store from {self.table_name}: {e}",
                table_name=self.table_name,
                error=str(e),
            )
            raise ArchiveError(f"Failed to load store from {self.table_name}") from e

        meta = next((item for item in items if item.get("kind") == "meta"), None)
        if meta is None:
            self.logger.info("No saved store in table", table_name=self.table_name)
            return False

        feeds: dict[str, dict[str, Any]] = {}
        for item in items:
            if item.get("kind") == "feed":
                feeds[item["url"]] = {
                    "url": item["url"],
                    "title": item.get("title", ""),
                    "entries": [],
                }
        for item in sorted(
            (item for item in items if item.get("kind") == "entry"),
            key=lambda item: int(item["position"]),
        ):
            feed = feeds.setdefault(
                item["feed_url"], {"url": item["feed_url"], "title": "", "entries": []}
            )
            feed["entries"].append({name: item.get(name) for name in ENTRY_FIELDS})
            feed["entries"][-1]["tags"] = list(item.get("tags", []))

        restore(
            store,
            {
                "version": int(meta["version"]),
                "last_update": meta["last_update"],
                "feeds": list(feeds.values()),
            },
        )
        self.logger.info(
            "Loaded store from DynamoDB",
            table_name=self.table_name,
            entries_count=store.entry_count(),
        )
        return True


def open_archive(config: ArchiveConfig, execution_id: str | None = None):
    """Build the archive backend named in the configuration."""
    if config.backend == "json":
        return JsonArchive(config.path, execution_id=execution_id)
    if config.backend == "dynamodb":
        return DynamoDBArchive(config.table_name, config.region, execution_id)
    raise ValueError(f"Unknown archive backend: {config.backend}")
