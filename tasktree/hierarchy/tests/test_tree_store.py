import unittest
from datetime import date
from tasktree.hierarchy.errors import TaskNotFound
from tasktree.hierarchy.task import Task
from tasktree.hierarchy.tree_store import TreeStore

DAY = date(2024, 1, 1)


def make_task(task_id, parent_id=None, level=0):
    return Task(id=task_id, title=task_id, start_date=DAY, end_date=DAY, parent_id=parent_id, level=level)


class TestTreeStore(unittest.TestCase):
    def setUp(self):
        self.store = TreeStore([
            make_task("A"),
            make_task("B", "A", 1),
            make_task("C", "A", 1),
            make_task("D", "B", 2),
        ])

    def test_children_and_roots(self):
        self.assertEqual(self.store.child_ids("A"), ["B", "C"])
        self.assertEqual([task.id for task in self.store.roots()], ["A"])
        self.assertTrue(self.store.has_children("B"))
        self.assertFalse(self.store.has_children("C"))

    def test_ancestors_and_descendants(self):
        self.assertEqual(self.store.ancestor_ids("D"), ["B", "A"])
        self.assertEqual(self.store.descendant_ids("A"), ["B", "D", "C"])
        self.assertEqual(self.store.subtree_ids("B"), ["B", "D"])
        self.assertTrue(self.store.is_descendant("D", "A"))
        self.assertFalse(self.store.is_descendant("A", "D"))

    def test_set_parent_keeps_index_in_sync(self):
        self.store.set_parent("D", "C")

        self.assertEqual(self.store.child_ids("B"), [])
        self.assertEqual(self.store.child_ids("C"), ["D"])
        self.assertEqual(self.store.require("D").parent_id, "C")

    def test_remove(self):
        removed = self.store.remove("C")

        self.assertEqual(removed.id, "C")
        self.assertNotIn("C", self.store)
        self.assertEqual(self.store.child_ids("A"), ["B"])

    def test_require_missing(self):
        with self.assertRaises(TaskNotFound):
            self.store.require("nope")

    def test_duplicate_id(self):
        with self.assertRaises(ValueError):
            self.store.add(make_task("A"))

    def test_ancestor_walk_stops_on_cycle(self):
        store = TreeStore([make_task("X", "Y"), make_task("Y", "X")])

        self.assertEqual(store.ancestor_ids("X"), ["Y"])

    def test_clone_is_independent(self):
        clone = self.store.clone()
        clone.require("A").title = "changed"

        self.assertEqual(self.store.require("A").title, "A")
        self.assertEqual(clone.child_ids("A"), ["B", "C"])

    def test_max_depth(self):
        self.assertEqual(self.store.max_depth(), 3)
        self.assertEqual(TreeStore().max_depth(), 0)
