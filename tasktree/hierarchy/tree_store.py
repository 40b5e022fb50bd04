"""
In-memory collection of tasks keyed by id.

Two indexes are kept:
- id -> Task
- parent_id -> [child ids], in insertion order

Children are never stored on a task; they are derived from the index.
The parent_id of a task is a lookup key, not an ownership edge.

The store makes no promises about the structure. A freshly loaded store may
contain dangling parents or cycles until HierarchyValidator.repair() has run,
so the traversal helpers below guard against revisiting a node.
"""
from dataclasses import replace
from typing import Iterable, Iterator, Optional
import logging
from tasktree.hierarchy.errors import TaskNotFound
from tasktree.hierarchy.task import Task

logger = logging.getLogger(__name__)


class TreeStore:
    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: dict[str, Task] = {}
        self._children: dict[str, list[str]] = {}
        for task in tasks:
            self.add(task)

    # -------------------- indexes --------------------
    def rebuild_index(self) -> None:
        """Recreate the parent -> children index from the tasks' parent_id."""
        self._children = {}
        for task in self._tasks.values():
            if task.parent_id is not None:
                self._children.setdefault(task.parent_id, []).append(task.id)

    # -------------------- lookups --------------------
    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def get(self, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def task_ids(self) -> list[str]:
        return list(self._tasks.keys())

    def child_ids(self, task_id: str) -> list[str]:
        return list(self._children.get(task_id, []))

    def children_of(self, task_id: str) -> list[Task]:
        return [self._tasks[child_id] for child_id in self._children.get(task_id, []) if child_id in self._tasks]

    def has_children(self, task_id: str) -> bool:
        return len(self._children.get(task_id, [])) > 0

    def roots(self) -> list[Task]:
        return [task for task in self._tasks.values() if task.parent_id is None]

    def ancestor_ids(self, task_id: str) -> list[str]:
        """Ids from the parent upward to the root. Stops if a cycle is met."""
        result: list[str] = []
        seen = {task_id}
        task = self._tasks.get(task_id)
        while task is not None and task.parent_id is not None:
            parent_id = task.parent_id
            if parent_id in seen:
                logger.debug(f"ancestor_ids: cycle at {parent_id!r} while walking up from {task_id!r}")
                break
            seen.add(parent_id)
            result.append(parent_id)
            task = self._tasks.get(parent_id)
        return result

    def descendant_ids(self, task_id: str) -> list[str]:
        """Ids of every task below task_id, depth-first pre-order."""
        result: list[str] = []
        seen = {task_id}
        stack = list(reversed(self._children.get(task_id, [])))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(reversed(self._children.get(current, [])))
        return result

    def subtree_ids(self, task_id: str) -> list[str]:
        return [task_id] + self.descendant_ids(task_id)

    def is_descendant(self, candidate_id: str, ancestor_id: str) -> bool:
        """True when ancestor_id is found by walking up the parent chain of candidate_id."""
        return ancestor_id in self.ancestor_ids(candidate_id)

    def max_depth(self) -> int:
        """Number of levels in use, i.e. max level + 1. Zero for an empty store."""
        if not self._tasks:
            return 0
        return max(task.level for task in self._tasks.values()) + 1

    # -------------------- mutation --------------------
    def add(self, task: Task) -> None:
        if not isinstance(task, Task):
            raise ValueError(f"Expected a Task, but got {type(task)}")
        if task.id in self._tasks:
            raise ValueError(f"Duplicate task id: {task.id!r}")
        self._tasks[task.id] = task
        if task.parent_id is not None:
            self._children.setdefault(task.parent_id, []).append(task.id)

    def remove(self, task_id: str) -> Task:
        task = self.require(task_id)
        del self._tasks[task_id]
        if task.parent_id is not None:
            self._detach(task.parent_id, task_id)
        return task

    def set_parent(self, task_id: str, parent_id: Optional[str]) -> None:
        """Update parent_id and keep the children index in sync."""
        task = self.require(task_id)
        if task.parent_id == parent_id:
            return
        if task.parent_id is not None:
            self._detach(task.parent_id, task_id)
        task.parent_id = parent_id
        if parent_id is not None:
            self._children.setdefault(parent_id, []).append(task_id)

    def _detach(self, parent_id: str, child_id: str) -> None:
        siblings = self._children.get(parent_id)
        if not siblings:
            return
        if child_id in siblings:
            siblings.remove(child_id)
        if not siblings:
            del self._children[parent_id]

    # -------------------- serialization --------------------
    def to_list(self) -> list[dict]:
        return [task.to_dict() for task in self._tasks.values()]

    def clone(self) -> "TreeStore":
        return TreeStore(replace(task) for task in self._tasks.values())
