"""
Keep start_date, end_date and duration of tasks consistent with each other
and with the spans of their relatives.

- Changing a duration moves the end date, or the start date when the task
  has adjust_start_date set.
- Editing the dates recomputes the duration as the number of working days
  in [start, end].
- Shifting a task moves its whole subtree by the same number of calendar
  days. Afterwards every ancestor is widened until it covers all of its
  descendants. Ancestors are never narrowed.

All operations return the ids of the tasks whose dates changed.

PROMPT> python -m tasktree.schedule.temporal_propagator
"""
from datetime import date, timedelta
from typing import Optional
import logging
from tasktree.hierarchy.errors import InvalidDateRange
from tasktree.hierarchy.task import MAX_DURATION, MIN_DURATION, Task
from tasktree.hierarchy.tree_store import TreeStore
from tasktree.schedule.working_days import WorkingDayCalendar

logger = logging.getLogger(__name__)


class TemporalPropagator:
    def __init__(self, calendar: Optional[WorkingDayCalendar] = None):
        self.calendar = calendar or WorkingDayCalendar()

    def set_duration(self, store: TreeStore, task_id: str, duration: int) -> set[str]:
        task = store.require(task_id)
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValueError(f"duration must be an int, but got {type(duration)}")
        if not MIN_DURATION <= duration <= MAX_DURATION:
            raise ValueError(f"duration must be in {MIN_DURATION}..{MAX_DURATION}, but got {duration}")
        task.duration = duration
        if task.adjust_start_date:
            task.start_date = self.calendar.subtract_working_days(task.end_date, duration)
        else:
            task.end_date = self.calendar.add_working_days(task.start_date, duration)
        task.touch()
        logger.debug(f"set_duration: {task_id!r} is now {duration} days, {task.start_date} .. {task.end_date}")
        return {task_id} | self.widen_ancestors(store, task_id)

    def update_dates(self, store: TreeStore, task_id: str, start_date: date, end_date: date) -> set[str]:
        task = store.require(task_id)
        if not isinstance(start_date, date) or not isinstance(end_date, date):
            raise ValueError("start_date and end_date must be dates")
        if end_date < start_date:
            raise InvalidDateRange(start_date, end_date)
        task.start_date = start_date
        task.end_date = end_date
        task.duration = min(MAX_DURATION, max(MIN_DURATION, self.calendar.count_working_days(start_date, end_date)))
        task.touch()
        logger.debug(f"update_dates: {task_id!r} is now {start_date} .. {end_date}, {task.duration} days")
        return {task_id} | self.widen_ancestors(store, task_id)

    def shift_span(self, store: TreeStore, task_id: str, delta_days: int) -> set[str]:
        """Move the task and every descendant by delta_days calendar days."""
        store.require(task_id)
        if isinstance(delta_days, bool) or not isinstance(delta_days, int):
            raise ValueError(f"delta_days must be an int, but got {type(delta_days)}")
        if delta_days == 0:
            return set()
        delta = timedelta(days=delta_days)
        changed = set()
        for subtree_id in store.subtree_ids(task_id):
            task = store.require(subtree_id)
            task.start_date += delta
            task.end_date += delta
            task.touch()
            changed.add(subtree_id)
        logger.debug(f"shift_span: moved {len(changed)} tasks by {delta_days} days from {task_id!r}")
        return changed | self.widen_ancestors(store, task_id)

    def widen_ancestors(self, store: TreeStore, task_id: str) -> set[str]:
        """
        Walk up from task_id. Each ancestor grows to the union of its own span
        and the spans of all its descendants.
        """
        changed = set()
        for ancestor_id in store.ancestor_ids(task_id):
            ancestor = store.require(ancestor_id)
            earliest, latest = self.subtree_span(store, ancestor)
            if earliest < ancestor.start_date or latest > ancestor.end_date:
                logger.debug(f"widen_ancestors: {ancestor_id!r} from {ancestor.start_date} .. {ancestor.end_date} to {earliest} .. {latest}")
                ancestor.start_date = min(ancestor.start_date, earliest)
                ancestor.end_date = max(ancestor.end_date, latest)
                ancestor.touch()
                changed.add(ancestor_id)
        return changed

    @staticmethod
    def subtree_span(store: TreeStore, task: Task) -> tuple[date, date]:
        earliest = task.start_date
        latest = task.end_date
        for descendant_id in store.descendant_ids(task.id):
            descendant = store.require(descendant_id)
            earliest = min(earliest, descendant.start_date)
            latest = max(latest, descendant.end_date)
        return earliest, latest


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    store = TreeStore([
        Task(id="A", title="A", start_date=date(2024, 1, 1), end_date=date(2024, 1, 10), duration=10),
        Task(id="B", title="B", start_date=date(2024, 1, 1), end_date=date(2024, 1, 3), duration=3, parent_id="A", level=1),
        Task(id="C", title="C", start_date=date(2024, 1, 4), end_date=date(2024, 1, 8), duration=4, parent_id="A", level=1),
    ])
    propagator = TemporalPropagator()
    changed = propagator.shift_span(store, "C", 3)
    print(f"changed: {sorted(changed)}")
    for task in store:
        print(task.id, task.start_date, task.end_date)
