import unittest
from datetime import date
from tasktree.hierarchy.task import Task
from tasktree.hierarchy.tree_store import TreeStore
from tasktree.schedule.date_adjustment import ProjectDateAdjuster


class TestProjectDateAdjuster(unittest.TestCase):
    def setUp(self):
        self.store = TreeStore([
            Task(id="A", title="A", start_date=date(2024, 1, 1), end_date=date(2024, 1, 12), duration=10),
            Task(id="B", title="B", start_date=date(2024, 1, 3), end_date=date(2024, 1, 5), duration=2, parent_id="A", level=1),
        ])
        self.adjuster = ProjectDateAdjuster()

    def test_move_forward(self):
        # Act
        adjustment = self.adjuster.adjust(self.store, date(2024, 1, 8))

        # Assert
        self.assertEqual(adjustment.days_difference, 6)
        self.assertTrue(adjustment.moving_forward)
        self.assertEqual(self.store.require("A").start_date, date(2024, 1, 8))
        self.assertEqual(self.store.require("A").end_date, date(2024, 1, 19))
        self.assertEqual(self.store.require("B").start_date, date(2024, 1, 10))
        self.assertEqual(self.store.require("B").end_date, date(2024, 1, 12))
        self.assertEqual(sorted(adjustment.adjusted_task_ids), ["A", "B"])

    def test_move_backward(self):
        adjustment = self.adjuster.adjust(self.store, date(2023, 12, 25))

        self.assertFalse(adjustment.moving_forward)
        self.assertEqual(adjustment.days_difference, 6)
        self.assertEqual(self.store.require("A").start_date, date(2023, 12, 25))

    def test_undo_once(self):
        # Arrange
        self.adjuster.adjust(self.store, date(2024, 1, 8))

        # Act
        first = self.adjuster.undo(self.store)
        second = self.adjuster.undo(self.store)

        # Assert
        self.assertEqual(first, {"A", "B"})
        self.assertEqual(second, set())
        self.assertEqual(self.store.require("A").start_date, date(2024, 1, 1))
        self.assertEqual(self.store.require("B").end_date, date(2024, 1, 5))
        self.assertFalse(self.adjuster.can_undo())

    def test_same_start_is_a_no_op(self):
        self.assertIsNone(self.adjuster.adjust(self.store, date(2024, 1, 1)))
        self.assertFalse(self.adjuster.can_undo())

    def test_preview_warns_about_non_working_day(self):
        preview = self.adjuster.preview(self.store, date(2024, 1, 7))

        self.assertEqual(preview.original_start, date(2024, 1, 1))
        self.assertEqual(preview.affected_task_count, 2)
        self.assertEqual(len(preview.warnings), 1)
        self.assertEqual(self.store.require("A").start_date, date(2024, 1, 1))

    def test_empty_store(self):
        self.assertIsNone(self.adjuster.adjust(TreeStore(), date(2024, 1, 8)))

    def test_parent_still_covers_longer_child(self):
        # Arrange
        store = TreeStore([
            Task(id="A", title="A", start_date=date(2024, 1, 1), end_date=date(2024, 1, 12), duration=2, has_children=True),
            Task(id="B", title="B", start_date=date(2024, 1, 1), end_date=date(2024, 1, 12), duration=10, parent_id="A", level=1),
        ])

        # Act
        self.adjuster.adjust(store, date(2024, 2, 5))

        # Assert
        self.assertEqual(store.require("B").start_date, date(2024, 2, 5))
        self.assertEqual(store.require("B").end_date, date(2024, 2, 16))
        self.assertEqual(store.require("A").start_date, date(2024, 2, 5))
        self.assertEqual(store.require("A").end_date, date(2024, 2, 16))

    def test_undo_restores_widened_parent(self):
        store = TreeStore([
            Task(id="A", title="A", start_date=date(2024, 1, 1), end_date=date(2024, 1, 12), duration=2, has_children=True),
            Task(id="B", title="B", start_date=date(2024, 1, 1), end_date=date(2024, 1, 12), duration=10, parent_id="A", level=1),
        ])
        self.adjuster.adjust(store, date(2024, 2, 5))

        self.adjuster.undo(store)

        self.assertEqual(store.require("A").end_date, date(2024, 1, 12))
