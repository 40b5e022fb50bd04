import tempfile
import unittest
from pathlib import Path
from tasktree.hierarchy.errors import PersistenceFailure, QuotaExceeded
from tasktree.persistence.key_value_store import DirectoryKeyValueStore, InMemoryKeyValueStore


class TestInMemoryKeyValueStore(unittest.TestCase):
    def test_set_get_remove(self):
        store = InMemoryKeyValueStore()

        store.set("key", b"value")

        self.assertEqual(store.get("key"), b"value")
        store.remove("key")
        self.assertIsNone(store.get("key"))
        store.remove("key")

    def test_quota_exceeded_keeps_old_value(self):
        # Arrange
        store = InMemoryKeyValueStore(capacity=10)
        store.set("a", b"12345")

        # Act
        with self.assertRaises(QuotaExceeded) as cm:
            store.set("a", b"12345678901")

        # Assert
        self.assertIsInstance(cm.exception, PersistenceFailure)
        self.assertEqual(cm.exception.capacity, 10)
        self.assertEqual(store.get("a"), b"12345")

    def test_overwrite_counts_only_new_size(self):
        store = InMemoryKeyValueStore(capacity=10)
        store.set("a", b"1234567890")

        store.set("a", b"0987654321")

        self.assertEqual(store.used_bytes(), 10)

    def test_invalid_key_and_value(self):
        store = InMemoryKeyValueStore()
        with self.assertRaises(ValueError):
            store.set("../escape", b"x")
        with self.assertRaises(ValueError):
            store.set("key", "not bytes")


class TestDirectoryKeyValueStore(unittest.TestCase):
    def test_set_get_remove(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DirectoryKeyValueStore(Path(tmpdir) / "storage")

            store.set("tasks", b"[]")

            self.assertEqual(store.get("tasks"), b"[]")
            self.assertTrue((Path(tmpdir) / "storage" / "tasks").is_file())
            store.remove("tasks")
            self.assertIsNone(store.get("tasks"))

    def test_missing_key(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DirectoryKeyValueStore(Path(tmpdir))

            self.assertIsNone(store.get("nothing"))

    def test_capacity(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DirectoryKeyValueStore(Path(tmpdir), capacity=8)
            store.set("a", b"1234")

            with self.assertRaises(QuotaExceeded):
                store.set("b", b"12345")
            store.set("a", b"12345678")
            self.assertEqual(store.get("a"), b"12345678")
