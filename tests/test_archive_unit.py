"""Unit tests for store persistence."""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from tagfeed.archive import (
    DynamoDBArchive,
    JsonArchive,
    open_archive,
    restore,
    snapshot,
)
from tagfeed.config import ArchiveConfig
from tagfeed.errors import ArchiveError
from tagfeed.models import Entry
from tagfeed.store import EPOCH, Store

FEED = "https://example.com/feed.xml"


def populated_store():
    store = Store()
    store.merge(
        FEED,
        [
            Entry(
                id="e1",
                title="First",
                link="https://example.com/1",
                date="2024-01-01T00:00:00Z",
                content="<p>one</p>",
                feed_url=FEED,
                content_type="html",
                tags={"unread", "starred"},
            ),
            Entry(
                id="e2",
                title="Second",
                link="https://example.com/2",
                date="2024-01-02T00:00:00Z",
                content="two",
                feed_url=FEED,
                tags=set(),
            ),
        ],
        title="Example",
    )
    return store


def client_error(operation):
    return ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "no table"}},
        operation,
    )


class TestSnapshot:
    """Snapshot and restore of plain data."""

    def test_restore_rebuilds_feeds_and_back_references(self):
        """Test that a JSON round trip rebuilds feeds, tags and back references."""
        original = populated_store()
        data = json.loads(json.dumps(snapshot(original)))

        restored = Store()
        restore(restored, data)

        assert restored.feed_urls() == [FEED]
        assert restored.get_feed(FEED).title == "Example"
        assert restored.last_update() == original.last_update()
        entry = restored.get_entry(FEED, "e1")
        assert entry.tags == {"unread", "starred"}
        assert entry.content_type == "html"
        assert entry.feed is restored.get_feed(FEED)
        assert [e.id for e in restored.all_entries()] == ["e2", "e1"]

    def test_empty_store(self):
        """Test that an empty store snapshots to no feeds at the epoch."""
        data = snapshot(Store())

        assert data["feeds"] == []
        assert datetime.fromisoformat(data["last_update"]) == EPOCH

    def test_wrong_version(self):
        """Test that a snapshot from another version is rejected."""
        with pytest.raises(ArchiveError, match="version"):
            restore(Store(), {"version": 99, "feeds": [], "last_update": EPOCH.isoformat()})

    def test_malformed(self):
        """Test that a snapshot missing required keys is rejected."""
        with pytest.raises(ArchiveError, match="Malformed"):
            restore(Store(), {"version": 1, "feeds": [{"title": "no url"}]})


class TestJsonArchive:
    """Unit tests for JsonArchive."""

    def test_round_trip(self, tmp_path):
        """Test saving and loading through a JSON file, with no temp file left behind."""
        archive = JsonArchive(tmp_path / "nested" / "store.json")
        archive.save(populated_store())

        store = Store()
        assert archive.load(store) is True
        assert store.entry_count() == 2
        assert store.get_entry(FEED, "e2").title == "Second"
        assert not (tmp_path / "nested" / "store.json.tmp").exists()

    def test_missing_file(self, tmp_path):
        """Test that a missing archive file loads nothing."""
        store = Store()

        assert JsonArchive(tmp_path / "store.json").load(store) is False
        assert store.entry_count() == 0

    def test_unreadable_file(self, tmp_path):
        """Test that a corrupt archive file raises ArchiveError."""
        path = tmp_path / "store.json"
        path.write_text("{broken")

        with pytest.raises(ArchiveError):
            JsonArchive(path).load(Store())


class TestDynamoDBArchive:
    """Unit tests for DynamoDBArchive with a mocked boto3 resource."""

    def setup_method(self):
        self.patcher = patch("tagfeed.archive.boto3.resource")
        self.resource = self.patcher.start()
        self.table = MagicMock()
        self.resource.return_value.Table.return_value = self.table
        self.batch = MagicMock()
        self.table.batch_writer.return_value.__enter__.return_value = self.batch

    def teardown_method(self):
        self.patcher.stop()

    def saved_items(self):
        return [call.kwargs["Item"] for call in self.batch.put_item.call_args_list]

    def test_init(self):
        """Test that the archive binds to the configured table and region."""
        DynamoDBArchive("entries", "eu-west-1")

        self.resource.assert_called_once_with("dynamodb", region_name="eu-west-1")
        self.resource.return_value.Table.assert_called_once_with("entries")

    def test_save_writes_meta_feed_and_entries(self):
        """Test that save writes one meta item, one item per feed and one per entry."""
        DynamoDBArchive("entries").save(populated_store())

        self.table.batch_writer.assert_called_once_with(overwrite_by_pkeys=["item_id"])
        items = {item["item_id"]: item for item in self.saved_items()}
        assert set(items) == {
            "meta",
            f"feed#{FEED}",
            f"entry#{FEED}#e1",
            f"entry#{FEED}#e2",
        }
        assert items[f"entry#{FEED}#e1"]["tags"] == ["starred", "unread"]
        assert items[f"entry#{FEED}#e2"]["position"] == 1

    def test_load_round_trip_with_pagination(self):
        """Test that load follows scan pagination and keeps entry order."""
        DynamoDBArchive("entries").save(populated_store())
        items = self.saved_items()
        self.table.scan.side_effect = [
            {"Items": items[:2], "LastEvaluatedKey": {"item_id": "x"}},
            {"Items": items[2:]},
        ]

        store = Store()
        assert DynamoDBArchive("entries").load(store) is True

        assert self.table.scan.call_args_list[1].kwargs == {
            "ExclusiveStartKey": {"item_id": "x"}
        }
        assert store.get_feed(FEED).title == "Example"
        assert store.get_entry(FEED, "e1").tags == {"unread", "starred"}
        assert list(store.get_feed(FEED).entries) == ["e1", "e2"]

    def test_load_empty_table(self):
        """Test that an empty table reports no saved store."""
        self.table.scan.return_value = {"Items": []}

        assert DynamoDBArchive("entries").load(Store()) is False

    def test_client_errors_become_archive_errors(self):
        """Test that DynamoDB client errors surface as ArchiveError."""
        self.table.scan.side_effect = client_error("Scan")
        self.batch.put_item.side_effect = client_error("BatchWriteItem")
        archive = DynamoDBArchive("entries")

        with pytest.raises(ArchiveError):
            archive.load(Store())
        with pytest.raises(ArchiveError):
            archive.save(populated_store())


class TestOpenArchive:
    """Backend selection."""

    def test_json(self, tmp_path):
        """Test that the json backend builds a JsonArchive."""
        archive = open_archive(ArchiveConfig(path=str(tmp_path / "s.json")))

        assert isinstance(archive, JsonArchive)

    def test_dynamodb(self):
        """Test that the dynamodb backend builds a DynamoDBArchive."""
        with patch("tagfeed.archive.boto3.resource"):
            archive = open_archive(ArchiveConfig(backend="dynamodb", table_name="t"))

        assert isinstance(archive, DynamoDBArchive)
        assert archive.table_name == "t"

    def test_unknown(self):
        """Test that an unknown backend name is rejected."""
        with pytest.raises(ValueError):
            open_archive(ArchiveConfig(backend="sqlite"))


def test_last_update_is_timezone_aware():
    """Test that snapshots record last_update with its UTC offset."""
    data = snapshot(populated_store())

    assert datetime.fromisoformat(data["last_update"]).tzinfo == UTC
