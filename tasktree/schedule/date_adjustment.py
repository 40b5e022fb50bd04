"""
Move the whole project to a new start date.

The project start is the earliest start_date of any task. The distance to the
new start is measured in working days, and every task's start is stepped by
that many working days in the same direction. Its end is then derived from
its duration again, so every task keeps its length in working days. Parents
are then widened to cover their children again.

The previous dates of every task are kept, so the most recent adjustment can
be undone once. A second undo, or an undo after a new adjustment was undone,
does nothing.

PROMPT> python -m tasktree.schedule.date_adjustment
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
import logging
from tasktree.hierarchy.tree_store import TreeStore
from tasktree.schedule.temporal_propagator import TemporalPropagator
from tasktree.schedule.working_days import WorkingDayCalendar

logger = logging.getLogger(__name__)


@dataclass
class DateAdjustmentPreview:
    original_start: Optional[date]
    new_start: date
    days_difference: int
    moving_forward: bool
    affected_task_count: int
    warnings: list[str] = field(default_factory=list)


@dataclass
class DateAdjustment:
    original_start: date
    new_start: date
    days_difference: int
    moving_forward: bool
    previous_spans: dict[str, tuple[date, date]] = field(default_factory=dict)

    @property
    def adjusted_task_ids(self) -> list[str]:
        return list(self.previous_spans.keys())


class ProjectDateAdjuster:
    def __init__(self, calendar: Optional[WorkingDayCalendar] = None):
        self.calendar = calendar or WorkingDayCalendar()
        self.propagator = TemporalPropagator(self.calendar)
        self.last_adjustment: Optional[DateAdjustment] = None

    @staticmethod
    def project_start(store: TreeStore) -> Optional[date]:
        starts = [task.start_date for task in store]
        return min(starts) if starts else None

    def preview(self, store: TreeStore, new_start: date) -> DateAdjustmentPreview:
        if not isinstance(new_start, date):
            raise ValueError(f"new_start must be a date, but got {type(new_start)}")
        original_start = self.project_start(store)
        warnings = []
        if not self.calendar.is_working_day(new_start):
            warnings.append(f"The new start date {new_start} is not a working day")
        if original_start is None:
            warnings.append("The project has no tasks")
            return DateAdjustmentPreview(None, new_start, 0, True, 0, warnings)
        moving_forward = new_start >= original_start
        days_difference = self._working_day_distance(original_start, new_start)
        return DateAdjustmentPreview(original_start, new_start, days_difference, moving_forward, len(store), warnings)

    def adjust(self, store: TreeStore, new_start: date) -> Optional[DateAdjustment]:
        """
        Shift every task. Returns None when there is nothing to do,
        i.e. the store is empty or already starts at new_start.
        """
        preview = self.preview(store, new_start)
        if preview.original_start is None or preview.original_start == new_start:
            return None
        adjustment = DateAdjustment(
            original_start=preview.original_start,
            new_start=new_start,
            days_difference=preview.days_difference,
            moving_forward=preview.moving_forward,
        )
        for task in store:
            adjustment.previous_spans[task.id] = (task.start_date, task.end_date)
            if preview.moving_forward:
                task.start_date = self.calendar.add_working_days(task.start_date, preview.days_difference)
            else:
                task.start_date = self.calendar.subtract_working_days(task.start_date, preview.days_difference)
            task.end_date = self.calendar.add_working_days(task.start_date, task.duration)
            task.touch()
        # parents cover their children
        for task in store:
            if not store.has_children(task.id):
                self.propagator.widen_ancestors(store, task.id)
        self.last_adjustment = adjustment
        logger.info(
            f"adjust: moved {len(adjustment.previous_spans)} tasks {'forward' if preview.moving_forward else 'backward'} "
            f"by {preview.days_difference} working days, {preview.original_start} -> {new_start}"
        )
        return adjustment

    def can_undo(self) -> bool:
        return self.last_adjustment is not None

    def undo(self, store: TreeStore) -> set[str]:
        """
        Restore the dates from before the last adjust(). Tasks created after
        the adjustment are left alone, tasks deleted since are skipped.
        Returns the ids that were restored.
        """
        adjustment = self.last_adjustment
        if adjustment is None:
            return set()
        restored = set()
        for task_id, (start_date, end_date) in adjustment.previous_spans.items():
            task = store.get(task_id)
            if task is None:
                continue
            task.start_date = start_date
            task.end_date = end_date
            task.touch()
            restored.add(task_id)
        self.last_adjustment = None
        logger.info(f"undo: restored the dates of {len(restored)} tasks, project starts at {adjustment.original_start} again")
        return restored

    def _working_day_distance(self, original_start: date, new_start: date) -> int:
        if new_start >= original_start:
            return self.calendar.working_days_between(original_start, new_start)
        return self.calendar.working_days_between(new_start, original_start)


if __name__ == "__main__":
    from tasktree.hierarchy.task import Task
    logging.basicConfig(level=logging.DEBUG)
    store = TreeStore([
        Task(id="A", title="A", start_date=date(2024, 1, 1), end_date=date(2024, 1, 11), duration=10),
        Task(id="B", title="B", start_date=date(2024, 1, 3), end_date=date(2024, 1, 6), duration=3, parent_id="A", level=1),
    ])
    adjuster = ProjectDateAdjuster()
    print(adjuster.preview(store, date(2024, 2, 5)))
    adjuster.adjust(store, date(2024, 2, 5))
    for task in store:
        print(task.id, task.start_date, task.end_date)
    adjuster.undo(store)
    for task in store:
        print(task.id, task.start_date, task.end_date)
