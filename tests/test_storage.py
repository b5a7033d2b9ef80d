"""Tests for SQLiteHistoryStore."""

import json
import sqlite3

import pytest

from layersizes.history.storage import NonExistentError, SQLiteHistoryStore
from layersizes.models import DirectoryNode, ImageHistory, ImageHistoryEntry


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db_path = tmp_path / "test.db"
    store = SQLiteHistoryStore(db_path)
    yield store
    store.close()


def make_entry(tags, size=10):
    tree = DirectoryNode.from_dict({"dirname": "/", "total_size": size, "files": {"a": size}})
    return ImageHistoryEntry(tags=list(tags), contents={"layer": tree}, inspect_info={"Os": "linux"})


class TestSQLiteHistoryStore:
    """Test SQLiteHistoryStore initialization and schema."""

    def test_init_creates_database(self, tmp_path):
        db_path = tmp_path / "new.db"
        assert not db_path.exists()

        store = SQLiteHistoryStore(db_path)

        assert db_path.exists()
        assert store.db_path == db_path
        store.close()

    def test_schema_creation(self, temp_db):
        """Test that schema is properly created."""
        conn = temp_db.connection

        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='image'")
        assert cursor.fetchone() is not None

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='image_history_entry'"
        )
        assert cursor.fetchone() is not None

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='index' AND name='idx_history_image_id'"
        )
        assert cursor.fetchone() is not None

    def test_pragma_settings(self, temp_db):
        """Test that PRAGMA settings are applied."""
        conn = temp_db.connection

        cursor = conn.execute("PRAGMA journal_mode")
        assert cursor.fetchone()[0].lower() == "wal"

        cursor = conn.execute("PRAGMA synchronous")
        assert cursor.fetchone()[0] == 1  # NORMAL mode

    def test_close(self, tmp_path):
        """Test closing the database connection."""
        store = SQLiteHistoryStore(tmp_path / "close_test.db")
        conn = store.connection

        store.close()

        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")


class TestTransaction:
    """Test transaction context manager."""

    def test_commit_on_success(self, temp_db):
        with temp_db.transaction() as conn:
            conn.execute("INSERT INTO image(name) VALUES (?)", ("app",))

        cursor = temp_db.connection.execute("SELECT COUNT(*) FROM image")
        assert cursor.fetchone()[0] == 1

    def test_rollback_on_exception(self, temp_db):
        with pytest.raises(ValueError):
            with temp_db.transaction() as conn:
                conn.execute("INSERT INTO image(name) VALUES (?)", ("app",))
                raise ValueError("Test error")

        cursor = temp_db.connection.execute("SELECT COUNT(*) FROM image")
        assert cursor.fetchone()[0] == 0


class TestCreateAndRead:
    """Test creating and reading histories."""

    def test_create_assigns_ids(self, temp_db):
        history = ImageHistory(name="app", history={"sha256:a": make_entry(["latest"])})

        created = temp_db.create(history)

        assert created.id is not None
        assert created.name == "app"
        assert created.history["sha256:a"].id is not None
        assert history.id is None

    def test_read_by_name(self, temp_db):
        temp_db.create(ImageHistory(name="app", history={"sha256:a": make_entry(["latest"], size=42)}))

        histories = temp_db.read("app")

        assert len(histories) == 1
        entry = histories[0].history["sha256:a"]
        assert entry.tags == ["latest"]
        assert entry.contents["layer"].total_size == 42
        assert entry.contents["layer"].files == {"a": 42}
        assert entry.inspect_info == {"Os": "linux"}

    def test_read_unknown_name(self, temp_db):
        assert temp_db.read("missing") == []

    def test_read_by_id(self, temp_db):
        created = temp_db.create(ImageHistory(name="app", history={"sha256:a": make_entry([])}))

        history = temp_db.read_by_id(created.id)

        assert history.name == "app"
        assert list(history.history) == ["sha256:a"]

    def test_read_by_unknown_id(self, temp_db):
        with pytest.raises(NonExistentError):
            temp_db.read_by_id(99)

    def test_list_images(self, temp_db):
        first = temp_db.create(ImageHistory(name="app"))
        second = temp_db.create(ImageHistory(name="db"))

        assert temp_db.list_images() == [
            {"ID": first.id, "Name": "app"},
            {"ID": second.id, "Name": "db"},
        ]


class TestUpdate:
    """Test updating a stored history."""

    def test_update_replaces_entries(self, temp_db):
        created = temp_db.create(
            ImageHistory(
                name="app",
                history={"sha256:a": make_entry(["v1"]), "sha256:b": make_entry(["v2"])},
            )
        )
        old_id = created.history["sha256:a"].id

        updated = temp_db.update(
            ImageHistory(
                name="app",
                id=created.id,
                history={"sha256:a": make_entry(["v1", "latest"], size=5), "sha256:c": make_entry(["v3"])},
            )
        )

        assert set(updated.history) == {"sha256:a", "sha256:c"}
        assert updated.history["sha256:a"].id == old_id

        stored = temp_db.read_by_id(created.id)
        assert set(stored.history) == {"sha256:a", "sha256:c"}
        assert stored.history["sha256:a"].tags == ["v1", "latest"]
        assert stored.history["sha256:a"].contents["layer"].total_size == 5

    def test_update_renames(self, temp_db):
        created = temp_db.create(ImageHistory(name="app"))

        temp_db.update(ImageHistory(name="renamed", id=created.id))

        assert temp_db.read_by_id(created.id).name == "renamed"

    def test_update_unknown_id(self, temp_db):
        with pytest.raises(NonExistentError):
            temp_db.update(ImageHistory(name="app", id=1234))

    def test_update_without_id(self, temp_db):
        with pytest.raises(ValueError):
            temp_db.update(ImageHistory(name="app"))


class TestDelete:
    """Test deleting histories."""

    def test_delete(self, temp_db):
        created = temp_db.create(ImageHistory(name="app", history={"sha256:a": make_entry([])}))

        temp_db.delete(created)

        assert temp_db.read("app") == []
        cursor = temp_db.connection.execute("SELECT COUNT(*) FROM image_history_entry")
        assert cursor.fetchone()[0] == 0

    def test_delete_by_name(self, temp_db):
        temp_db.create(ImageHistory(name="app", history={"sha256:a": make_entry([])}))

        temp_db.delete_by_name("app")

        assert temp_db.list_images() == []

    def test_delete_by_name_requires_single_match(self, temp_db):
        temp_db.create(ImageHistory(name="app"))
        temp_db.create(ImageHistory(name="app"))

        with pytest.raises(ValueError, match="exactly one"):
            temp_db.delete_by_name("app")

    def test_delete_by_unknown_name(self, temp_db):
        with pytest.raises(ValueError):
            temp_db.delete_by_name("missing")

    def test_delete_missing_image(self, temp_db):
        with pytest.raises(NonExistentError):
            temp_db.delete(ImageHistory(name="ghost", id=7))


class TestDeepContents:
    """Test storing trees deeper than the recursion limit allows to nest."""

    def test_create_and_read_deep_tree(self, temp_db, chain_tree_dict):
        """Contents hundreds of levels deep round-trip through the database."""
        tree = DirectoryNode.from_dict(chain_tree_dict(2000))
        entry = ImageHistoryEntry(tags=["deep"], contents={"layer": tree})

        created = temp_db.create(ImageHistory(name="deep", history={"sha256:a": entry}))
        stored = temp_db.read_by_id(created.id).history["sha256:a"].contents["layer"]

        depth = 0
        node = stored
        while node.subdirectories:
            assert dict(node.files) == {"f": 1}
            node = node.subdirectories["d"]
            depth += 1
        assert depth == 2000
        assert stored.total_size == 2001
        assert node.total_size == 1

    def test_contents_are_stored_flat(self, temp_db):
        temp_db.create(ImageHistory(name="app", history={"sha256:a": make_entry(["v1"], size=7)}))

        raw = temp_db.connection.execute("SELECT contents FROM image_history_entry").fetchone()[0]

        assert json.loads(raw) == {
            "layer": [{"key": "/", "parent": -1, "dirname": "/", "total_size": 7, "files": {"a": 7}}]
        }
