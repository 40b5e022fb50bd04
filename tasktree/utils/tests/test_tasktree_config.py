import json
import os
import tempfile
import unittest
from pathlib import Path
from tasktree.hierarchy.duration_aggregator import ConflictPolicy
from tasktree.persistence.key_value_store import InMemoryKeyValueStore
from tasktree.utils.tasktree_config import (
    SETTINGS_KEY,
    TaskTreeConfig,
    TaskTreeConfigError,
    load_persisted_settings,
    save_persisted_settings,
    validate_max_nesting_level,
)


class TestTaskTreeConfig(unittest.TestCase):
    def test_defaults(self):
        config = TaskTreeConfig.from_values({})

        self.assertEqual(config.max_nesting_level, 100)
        self.assertEqual(config.conflict_policy, ConflictPolicy.PREFER_CHILDREN)
        self.assertEqual(config.non_working_weekday, 6)
        self.assertTrue(config.autosave)

    def test_from_values(self):
        config = TaskTreeConfig.from_values({
            "TASKTREE_MAX_NESTING_LEVEL": "5",
            "TASKTREE_CONFLICT_POLICY": "Average",
            "TASKTREE_NON_WORKING_WEEKDAY": "5",
            "TASKTREE_AUTOSAVE": "false",
        })

        self.assertEqual(config.max_nesting_level, 5)
        self.assertEqual(config.conflict_policy, ConflictPolicy.AVERAGE)
        self.assertEqual(config.non_working_weekday, 5)
        self.assertFalse(config.autosave)

    def test_invalid_values(self):
        with self.assertRaises(TaskTreeConfigError):
            TaskTreeConfig.from_values({"TASKTREE_MAX_NESTING_LEVEL": "101"})
        with self.assertRaises(TaskTreeConfigError):
            TaskTreeConfig.from_values({"TASKTREE_MAX_NESTING_LEVEL": "many"})
        with self.assertRaises(TaskTreeConfigError):
            TaskTreeConfig.from_values({"TASKTREE_CONFLICT_POLICY": "coin_flip"})
        with self.assertRaises(TaskTreeConfigError):
            TaskTreeConfig.from_values({"TASKTREE_NON_WORKING_WEEKDAY": "9"})

    def test_validate_max_nesting_level(self):
        self.assertEqual(validate_max_nesting_level(1), 1)
        self.assertEqual(validate_max_nesting_level("100"), 100)
        for value in (0, 101, True, None):
            with self.assertRaises(TaskTreeConfigError):
                validate_max_nesting_level(value)

    def test_load_reads_dotenv_and_environment_wins(self):
        # Arrange
        with tempfile.TemporaryDirectory() as tmpdir:
            dotenv_path = Path(tmpdir) / ".env"
            dotenv_path.write_text("TASKTREE_MAX_NESTING_LEVEL=7\nTASKTREE_CONFLICT_POLICY=max\n", encoding="utf-8")
            environ = {
                "TASKTREE_CONFIG_PATH": tmpdir,
                "TASKTREE_CONFLICT_POLICY": "min",
            }

            # Act
            config = TaskTreeConfig.load(environ)

        # Assert
        self.assertEqual(config.dotenv_path, dotenv_path)
        self.assertEqual(config.max_nesting_level, 7)
        self.assertEqual(config.conflict_policy, ConflictPolicy.MIN)

    def test_relative_config_path_is_ignored(self):
        config = TaskTreeConfig.load({"TASKTREE_CONFIG_PATH": os.path.join("relative", "dir")})

        self.assertEqual(config.conflict_policy, ConflictPolicy.PREFER_CHILDREN)


class TestPersistedSettings(unittest.TestCase):
    def test_save_and_load(self):
        gateway = InMemoryKeyValueStore()
        save_persisted_settings(gateway, TaskTreeConfig(max_nesting_level=12))

        config = load_persisted_settings(gateway, TaskTreeConfig())

        self.assertEqual(config.max_nesting_level, 12)

    def test_camel_case_key(self):
        gateway = InMemoryKeyValueStore()
        gateway.set(SETTINGS_KEY, json.dumps({"maxNestingLevel": 3}).encode("utf-8"))

        self.assertEqual(load_persisted_settings(gateway, TaskTreeConfig()).max_nesting_level, 3)

    def test_bad_settings_are_ignored(self):
        gateway = InMemoryKeyValueStore()
        for data in (b"garbage", b"[]", json.dumps({"max_nesting_level": 500}).encode("utf-8")):
            gateway.set(SETTINGS_KEY, data)
            self.assertEqual(load_persisted_settings(gateway, TaskTreeConfig()).max_nesting_level, 100)
