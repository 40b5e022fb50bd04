"""
Structural mutations: create, move, delete.

Each operation checks every constraint it can violate before touching the
store, so a rejected request leaves the tree exactly as it was.

Every operation returns a MutationResult with the ids whose aggregation
and timeline rows are stale afterwards. Ancestors are included, so the
caller can pass stale_ids straight to DurationAggregator.aggregate_from().

PROMPT> python -m tasktree.hierarchy.mutation_engine
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional
import logging
import uuid
from tasktree.hierarchy.errors import CyclicReparent, InvalidDateRange, NestingLimitExceeded
from tasktree.hierarchy.hierarchy_validator import DEFAULT_MAX_NESTING_LEVEL
from tasktree.hierarchy.task import MAX_DURATION, MIN_DURATION, Task, TaskPriority, TaskStatus
from tasktree.hierarchy.tree_store import TreeStore
from tasktree.schedule.working_days import WorkingDayCalendar

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "status", "priority", "progress")


class DeleteStrategy(str, Enum):
    CASCADE = "cascade"
    PROMOTE = "promote"


@dataclass
class MutationResult:
    task_id: Optional[str] = None
    stale_ids: set[str] = field(default_factory=set)
    removed_ids: list[str] = field(default_factory=list)


class MutationEngine:
    def __init__(self, store: TreeStore, max_nesting_level: int = DEFAULT_MAX_NESTING_LEVEL, calendar: Optional[WorkingDayCalendar] = None):
        if not isinstance(store, TreeStore):
            raise ValueError(f"store must be a TreeStore, but got {type(store)}")
        if not isinstance(max_nesting_level, int) or max_nesting_level < 1:
            raise ValueError(f"max_nesting_level must be a positive integer, but got {max_nesting_level!r}")
        self.store = store
        self.max_nesting_level = max_nesting_level
        self.calendar = calendar or WorkingDayCalendar()

    def create(
        self,
        title: str,
        parent_id: Optional[str] = None,
        duration: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        adjust_start_date: bool = False,
        status: TaskStatus = TaskStatus.PENDING,
        priority: TaskPriority = TaskPriority.MEDIUM,
        description: str = "",
        progress: int = 0,
        task_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> MutationResult:
        """
        Insert a new task.

        The start date defaults to the parent's start, or today for a root.
        When no end date is given it is derived from the duration, when no
        duration is given it is counted from the two dates.
        """
        if not isinstance(title, str):
            raise ValueError(f"title must be a str, but got {type(title)}")
        parent = self.store.require(parent_id) if parent_id is not None else None
        level = parent.level + 1 if parent is not None else 0
        if level >= self.max_nesting_level:
            raise NestingLimitExceeded(self.max_nesting_level, level)
        if task_id is None:
            task_id = str(uuid.uuid4())
        elif task_id in self.store:
            raise ValueError(f"Duplicate task id: {task_id!r}")

        if start_date is None:
            start_date = parent.start_date if parent is not None else (today or date.today())
        if duration is None:
            if end_date is None:
                duration = MIN_DURATION
            else:
                if end_date < start_date:
                    raise InvalidDateRange(start_date, end_date)
                duration = min(MAX_DURATION, max(MIN_DURATION, self.calendar.count_working_days(start_date, end_date)))
        self._check_duration(duration)
        if end_date is None:
            end_date = self.calendar.add_working_days(start_date, duration)
        if end_date < start_date:
            raise InvalidDateRange(start_date, end_date)

        task = Task(
            id=task_id,
            title=title,
            description=description,
            start_date=start_date,
            end_date=end_date,
            duration=duration,
            parent_id=parent_id,
            level=level,
            adjust_start_date=adjust_start_date,
            status=TaskStatus(status),
            priority=TaskPriority(priority),
            progress=self._clamp_progress(progress),
        )
        self.store.add(task)
        if parent is not None:
            parent.has_children = True
            parent.touch()
        logger.debug(f"create: {task_id!r} under {parent_id!r} at level {level}")
        return MutationResult(task_id=task_id, stale_ids=self._with_ancestors([task_id]))

    def move(self, task_id: str, new_parent_id: Optional[str]) -> MutationResult:
        """
        Re-parent a task together with its subtree.

        Rejected with CyclicReparent when the new parent is the task itself or
        one of its descendants, and with NestingLimitExceeded when any task in
        the moved subtree would end up at or beyond the nesting ceiling.
        """
        task = self.store.require(task_id)
        new_parent = None
        if new_parent_id is not None:
            new_parent = self.store.require(new_parent_id)
            if new_parent_id == task_id or task_id in self.store.ancestor_ids(new_parent_id):
                raise CyclicReparent(task_id, new_parent_id)
        if task.parent_id == new_parent_id:
            return MutationResult(task_id=task_id)

        new_level = new_parent.level + 1 if new_parent is not None else 0
        new_levels = self._relative_levels(task_id, new_level)
        for subtree_id, level in new_levels.items():
            if level >= self.max_nesting_level:
                raise NestingLimitExceeded(self.max_nesting_level, level, subtree_id)

        old_parent_id = task.parent_id
        stale = self._with_ancestors([task_id])
        self.store.set_parent(task_id, new_parent_id)
        self._apply_levels(new_levels)
        self._refresh_has_children(old_parent_id)
        self._refresh_has_children(new_parent_id)
        task.touch()

        stale.update(new_levels.keys())
        stale.update(self._with_ancestors([task_id]))
        if old_parent_id is not None:
            stale.update(self._with_ancestors([old_parent_id]))
        logger.debug(f"move: {task_id!r} from {old_parent_id!r} to {new_parent_id!r}, {len(new_levels)} tasks renumbered")
        return MutationResult(task_id=task_id, stale_ids=stale)

    def delete(self, task_id: str, strategy: DeleteStrategy = DeleteStrategy.CASCADE) -> MutationResult:
        task = self.store.require(task_id)
        strategy = DeleteStrategy(strategy)
        parent_id = task.parent_id
        stale: set[str] = set()

        if strategy == DeleteStrategy.CASCADE:
            removed = self.store.subtree_ids(task_id)
            # deepest first, so no task is left pointing at a removed parent
            for removed_id in reversed(removed):
                self.store.remove(removed_id)
        else:
            children = self.store.child_ids(task_id)
            for child_id in children:
                self.store.set_parent(child_id, parent_id)
                self._apply_levels(self._relative_levels(child_id, task.level))
                stale.update(self.store.subtree_ids(child_id))
            self.store.remove(task_id)
            removed = [task_id]

        self._refresh_has_children(parent_id)
        if parent_id is not None:
            stale.update(self._with_ancestors([parent_id]))
        logger.debug(f"delete: {task_id!r} with strategy {strategy.value}, removed {len(removed)} tasks")
        return MutationResult(task_id=task_id, stale_ids=stale, removed_ids=removed)

    def update_fields(self, task_id: str, **fields) -> MutationResult:
        """Edit title, description, status, priority or progress."""
        task = self.store.require(task_id)
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        # convert everything first, so a bad value changes nothing
        values = dict(fields)
        if "status" in values:
            values["status"] = TaskStatus(values["status"])
        if "priority" in values:
            values["priority"] = TaskPriority(values["priority"])
        if "progress" in values:
            values["progress"] = self._clamp_progress(values["progress"])
        for name in ("title", "description"):
            if name in values and not isinstance(values[name], str):
                raise ValueError(f"{name} must be a str, but got {type(values[name])}")
        for name, value in values.items():
            setattr(task, name, value)
        task.touch()
        return MutationResult(task_id=task_id, stale_ids={task_id})

    def set_adjust_start_date(self, task_id: str, adjust_start_date: bool) -> MutationResult:
        task = self.store.require(task_id)
        task.adjust_start_date = bool(adjust_start_date)
        task.touch()
        return MutationResult(task_id=task_id, stale_ids={task_id})

    def set_max_nesting_level(self, max_nesting_level: int) -> None:
        """Applies to future create and move requests only."""
        if not isinstance(max_nesting_level, int) or max_nesting_level < 1:
            raise ValueError(f"max_nesting_level must be a positive integer, but got {max_nesting_level!r}")
        self.max_nesting_level = max_nesting_level

    def _relative_levels(self, top_id: str, top_level: int) -> dict[str, int]:
        """New level of every task in the subtree of top_id, when top_id is placed at top_level."""
        result = {top_id: top_level}
        queue = deque([top_id])
        while queue:
            current = queue.popleft()
            for child_id in self.store.child_ids(current):
                if child_id in result:
                    continue
                result[child_id] = result[current] + 1
                queue.append(child_id)
        return result

    def _apply_levels(self, levels: dict[str, int]) -> None:
        for task_id, level in levels.items():
            self.store.require(task_id).level = level

    def _refresh_has_children(self, task_id: Optional[str]) -> None:
        task = self.store.get(task_id)
        if task is not None:
            task.has_children = self.store.has_children(task.id)

    def _with_ancestors(self, task_ids: list[str]) -> set[str]:
        result = set(task_ids)
        for task_id in task_ids:
            result.update(self.store.ancestor_ids(task_id))
        return result

    @staticmethod
    def _check_duration(duration: int) -> None:
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValueError(f"duration must be an int, but got {type(duration)}")
        if not MIN_DURATION <= duration <= MAX_DURATION:
            raise ValueError(f"duration must be in {MIN_DURATION}..{MAX_DURATION}, but got {duration}")

    @staticmethod
    def _clamp_progress(progress: int) -> int:
        if isinstance(progress, bool) or not isinstance(progress, (int, float)):
            raise ValueError(f"progress must be a number, but got {type(progress)}")
        return max(0, min(100, int(progress)))


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    store = TreeStore()
    engine = MutationEngine(store, max_nesting_level=5)
    a = engine.create("A", duration=10, start_date=date(2024, 1, 1), task_id="A")
    engine.create("B", parent_id="A", duration=3, task_id="B")
    engine.create("C", parent_id="A", duration=4, task_id="C")
    engine.create("D", parent_id="A", duration=2, task_id="D")
    result = engine.move("B", "D")
    print(f"stale after move: {sorted(result.stale_ids)}")
    for task in store:
        print(task)
    try:
        engine.move("A", "B")
    except CyclicReparent as e:
        print(f"rejected: {e}")
