import unittest
from datetime import date
from tasktree.hierarchy.duration_aggregator import DurationAggregator
from tasktree.hierarchy.errors import CyclicReparent, InvalidDateRange, NestingLimitExceeded, TaskNotFound
from tasktree.hierarchy.mutation_engine import DeleteStrategy, MutationEngine
from tasktree.hierarchy.task import TaskStatus
from tasktree.hierarchy.tree_store import TreeStore

START = date(2024, 1, 1)


class TestMutationEngine(unittest.TestCase):
    def setUp(self):
        self.store = TreeStore()
        self.engine = MutationEngine(self.store)

    def create_abc(self):
        self.engine.create("A", duration=10, start_date=START, end_date=date(2024, 1, 10), task_id="A")
        self.engine.create("B", parent_id="A", duration=3, task_id="B")
        self.engine.create("C", parent_id="A", duration=4, task_id="C")

    def test_scenario_create_and_move(self):
        # Arrange
        self.create_abc()
        aggregator = DurationAggregator()
        aggregator.aggregate_all(self.store)
        self.assertEqual(self.store.require("A").aggregated_duration, 7)

        # Act
        self.engine.create("D", parent_id="A", task_id="D")
        result = self.engine.move("B", "D")
        aggregator.aggregate_from(self.store, result.stale_ids)

        # Assert
        self.assertEqual(self.store.require("B").level, 2)
        self.assertEqual(self.store.require("D").level, 1)
        self.assertEqual(self.store.child_ids("D"), ["B"])
        self.assertTrue(self.store.require("D").has_children)
        self.assertIn("A", result.stale_ids)
        self.assertIn("D", result.stale_ids)
        self.assertEqual(self.store.require("D").aggregated_duration, 3)
        self.assertEqual(self.store.require("A").aggregated_duration, 7)

    def test_create_defaults(self):
        self.create_abc()

        task = self.store.require("B")

        self.assertEqual(task.level, 1)
        self.assertEqual(task.start_date, START)
        # 3 working days after Monday 2024-01-01
        self.assertEqual(task.end_date, date(2024, 1, 4))
        self.assertTrue(self.store.require("A").has_children)

    def test_create_counts_duration_from_dates(self):
        result = self.engine.create("X", start_date=START, end_date=date(2024, 1, 7))

        self.assertEqual(self.store.require(result.task_id).duration, 6)

    def test_create_root_defaults_to_today(self):
        result = self.engine.create("X", today=date(2024, 3, 4))

        task = self.store.require(result.task_id)
        self.assertEqual(task.start_date, date(2024, 3, 4))
        self.assertEqual(task.duration, 1)
        self.assertEqual(task.level, 0)

    def test_create_rejects_bad_input(self):
        self.create_abc()
        with self.assertRaises(TaskNotFound):
            self.engine.create("X", parent_id="missing")
        with self.assertRaises(InvalidDateRange):
            self.engine.create("X", start_date=date(2024, 1, 5), end_date=START)
        with self.assertRaises(ValueError):
            self.engine.create("X", duration=0)
        with self.assertRaises(ValueError):
            self.engine.create("X", task_id="A")
        self.assertEqual(len(self.store), 3)

    def test_cyclic_move_is_rejected(self):
        # Arrange
        self.create_abc()
        self.engine.create("E", parent_id="B", task_id="E")
        before = self.store.to_list()

        # Act
        with self.assertRaises(CyclicReparent):
            self.engine.move("A", "E")
        with self.assertRaises(CyclicReparent):
            self.engine.move("B", "B")

        # Assert
        self.assertEqual(self.store.to_list(), before)

    def test_nesting_ceiling_on_create(self):
        # Arrange
        engine = MutationEngine(self.store, max_nesting_level=5)
        parent_id = None
        for level in range(5):
            parent_id = engine.create(f"L{level}", parent_id=parent_id, start_date=START).task_id
        before = self.store.to_list()

        # Act
        with self.assertRaises(NestingLimitExceeded) as cm:
            engine.create("too deep", parent_id=parent_id)

        # Assert
        self.assertIn("Maximum nesting level of 5 exceeded", str(cm.exception))
        self.assertEqual(self.store.to_list(), before)
        self.assertEqual(self.store.max_depth(), 5)

    def test_nesting_ceiling_on_move_checks_descendants(self):
        # Arrange
        engine = MutationEngine(self.store, max_nesting_level=3)
        engine.create("R", task_id="R", start_date=START)
        engine.create("R1", parent_id="R", task_id="R1")
        engine.create("S", task_id="S", start_date=START)
        engine.create("T", parent_id="S", task_id="T")
        before = self.store.to_list()

        # Act
        with self.assertRaises(NestingLimitExceeded) as cm:
            engine.move("S", "R1")

        # Assert
        self.assertEqual(cm.exception.task_id, "T")
        self.assertEqual(self.store.to_list(), before)

    def test_move_to_root(self):
        self.create_abc()

        result = self.engine.move("B", None)

        self.assertIsNone(self.store.require("B").parent_id)
        self.assertEqual(self.store.require("B").level, 0)
        self.assertIn("A", result.stale_ids)

    def test_move_to_same_parent_is_a_no_op(self):
        self.create_abc()

        result = self.engine.move("B", "A")

        self.assertEqual(result.stale_ids, set())

    def test_delete_cascade(self):
        # Arrange
        self.create_abc()
        self.engine.create("E", parent_id="B", task_id="E")

        # Act
        result = self.engine.delete("B", DeleteStrategy.CASCADE)

        # Assert
        self.assertEqual(sorted(result.removed_ids), ["B", "E"])
        self.assertEqual(sorted(self.store.task_ids()), ["A", "C"])
        self.assertIn("A", result.stale_ids)

    def test_delete_promote(self):
        # Arrange
        self.create_abc()
        self.engine.create("E", parent_id="B", task_id="E")
        self.engine.create("F", parent_id="B", task_id="F")
        self.engine.create("G", parent_id="F", task_id="G")
        count_before = len(self.store)

        # Act
        result = self.engine.delete("B", DeleteStrategy.PROMOTE)

        # Assert
        self.assertEqual(result.removed_ids, ["B"])
        self.assertEqual(len(self.store), count_before - 1)
        for child_id in ("E", "F"):
            self.assertEqual(self.store.require(child_id).parent_id, "A")
            self.assertEqual(self.store.require(child_id).level, 1)
        self.assertEqual(self.store.require("G").level, 2)
        self.assertEqual(self.store.child_ids("A"), ["C", "E", "F"])

    def test_delete_promote_root(self):
        self.create_abc()

        self.engine.delete("A", "promote")

        self.assertEqual(sorted(task.id for task in self.store.roots()), ["B", "C"])
        self.assertEqual(self.store.require("B").level, 0)

    def test_delete_last_child_clears_flag(self):
        self.create_abc()

        self.engine.delete("B")
        self.engine.delete("C")

        self.assertFalse(self.store.require("A").has_children)

    def test_update_fields(self):
        self.create_abc()

        result = self.engine.update_fields("B", status="completed", progress=150, title="Design")

        task = self.store.require("B")
        self.assertEqual(task.status, TaskStatus.COMPLETED)
        self.assertEqual(task.progress, 100)
        self.assertEqual(task.title, "Design")
        self.assertEqual(result.stale_ids, {"B"})

    def test_update_fields_rejects_bad_values_without_changes(self):
        self.create_abc()

        with self.assertRaises(ValueError):
            self.engine.update_fields("B", title="Design", status="bogus")
        with self.assertRaises(ValueError):
            self.engine.update_fields("B", parent_id="C")

        self.assertEqual(self.store.require("B").title, "B")

    def test_set_adjust_start_date(self):
        self.create_abc()

        self.engine.set_adjust_start_date("C", True)

        self.assertTrue(self.store.require("C").adjust_start_date)
