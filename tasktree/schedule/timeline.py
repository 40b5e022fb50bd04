"""
Render-ready view of the task tree for a Gantt chart.

The rows come out depth-first, pre-order. Roots and siblings are ordered by
their effective start date, ties broken by id. A parent's effective span
always covers its children, even when its stored dates don't.

The window is the project's span padded on both sides with 10% of its
length rounded up, at least 3 and at most 14 days. Offsets and widths are whole
calendar days relative to the padded window start.

The critical path is approximated as the root-to-leaf walk with the largest
sum of own durations. There are no dependency edges across branches, so
this is a heuristic, not CPM.

PROMPT> python -m tasktree.schedule.timeline
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal as D
from typing import Any, Optional
import logging
from tasktree.hierarchy.task import Task, TaskPriority, TaskStatus
from tasktree.hierarchy.tree_store import TreeStore

logger = logging.getLogger(__name__)

PADDING_FRACTION = D("0.1")
MIN_PADDING_DAYS = 3
MAX_PADDING_DAYS = 14

# (leaf color, parent color)
STATUS_COLORS = {
    TaskStatus.COMPLETED: ("#10b981", "#059669"),
    TaskStatus.CANCELLED: ("#6b7280", "#4b5563"),
    TaskStatus.IN_PROGRESS: ("#3b82f6", "#2563eb"),
}
PRIORITY_COLORS = {
    TaskPriority.HIGH: ("#ef4444", "#dc2626"),
    TaskPriority.MEDIUM: ("#f59e0b", "#d97706"),
    TaskPriority.LOW: ("#8b5cf6", "#7c3aed"),
}
DEFAULT_COLORS = ("#6366f1", "#4f46e5")


def task_color(status: TaskStatus, priority: TaskPriority, has_children: bool) -> str:
    """Status decides the color when it is final or active, otherwise priority does."""
    colors = STATUS_COLORS.get(status) or PRIORITY_COLORS.get(priority) or DEFAULT_COLORS
    return colors[1] if has_children else colors[0]


def padding_days(project_start: date, project_end: date) -> int:
    span_days = (project_end - project_start).days
    padding = int((D(span_days) * PADDING_FRACTION).quantize(D(1), rounding=ROUND_CEILING))
    return max(MIN_PADDING_DAYS, min(MAX_PADDING_DAYS, padding))


@dataclass
class TimelineRow:
    id: str
    title: str
    level: int
    parent_id: Optional[str]
    start_date: date
    end_date: date
    offset_days: int
    width_days: int
    status: TaskStatus
    priority: TaskPriority
    has_children: bool
    color: str
    duration: int
    aggregated_duration: Optional[int]
    progress: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "level": self.level,
            "parent_id": self.parent_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "offset_days": self.offset_days,
            "width_days": self.width_days,
            "status": self.status.value,
            "priority": self.priority.value,
            "has_children": self.has_children,
            "color": self.color,
            "duration": self.duration,
            "aggregated_duration": self.aggregated_duration,
            "progress": self.progress,
        }


@dataclass
class TimelineWindow:
    project_start: date
    project_end: date
    padding_days: int

    @property
    def start(self) -> date:
        return self.project_start - timedelta(days=self.padding_days)

    @property
    def end(self) -> date:
        return self.project_end + timedelta(days=self.padding_days)

    @property
    def total_days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass
class Timeline:
    rows: list[TimelineRow] = field(default_factory=list)
    window: Optional[TimelineWindow] = None

    def row(self, task_id: str) -> Optional[TimelineRow]:
        for row in self.rows:
            if row.id == task_id:
                return row
        return None


@dataclass
class CriticalPath:
    task_ids: list[str] = field(default_factory=list)
    total_duration: int = 0


@dataclass
class TimelineStatistics:
    total_tasks: int = 0
    root_tasks: int = 0
    max_depth: int = 0
    count_by_status: dict[str, int] = field(default_factory=dict)
    overall_progress: int = 0


class TimelineDeriver:
    def derive(self, store: TreeStore, root_id: Optional[str] = None) -> Timeline:
        """Rows for the whole tree, or for the subtree under root_id."""
        spans = self.effective_spans(store)
        tops = [store.require(root_id)] if root_id is not None else store.roots()
        ordered = self._preorder(store, tops, spans)
        if not ordered:
            return Timeline()

        project_start = min(spans[task.id][0] for task in ordered)
        project_end = max(spans[task.id][1] for task in ordered)
        window = TimelineWindow(project_start, project_end, padding_days(project_start, project_end))

        rows = []
        for task in ordered:
            start, end = spans[task.id]
            has_children = store.has_children(task.id)
            rows.append(TimelineRow(
                id=task.id,
                title=task.title,
                level=task.level,
                parent_id=task.parent_id,
                start_date=start,
                end_date=end,
                offset_days=(start - window.start).days,
                width_days=(end - start).days + 1,
                status=task.status,
                priority=task.priority,
                has_children=has_children,
                color=task_color(task.status, task.priority, has_children),
                duration=task.duration,
                aggregated_duration=task.aggregated_duration,
                progress=task.progress,
            ))
        logger.debug(f"derive: {len(rows)} rows, window {window.start} .. {window.end}")
        return Timeline(rows=rows, window=window)

    def effective_spans(self, store: TreeStore) -> dict[str, tuple[date, date]]:
        """Span of each task widened to cover its descendants, computed bottom-up."""
        spans: dict[str, tuple[date, date]] = {}
        for root in store.roots():
            stack: list[tuple[Task, bool]] = [(root, False)]
            while stack:
                task, children_done = stack.pop()
                if not children_done:
                    stack.append((task, True))
                    stack.extend((child, False) for child in store.children_of(task.id))
                    continue
                start, end = task.start_date, task.end_date
                for child in store.children_of(task.id):
                    child_start, child_end = spans[child.id]
                    start = min(start, child_start)
                    end = max(end, child_end)
                spans[task.id] = (start, end)
        return spans

    def critical_path(self, store: TreeStore, root_id: Optional[str] = None) -> CriticalPath:
        """
        Longest root-to-leaf walk by the sum of own durations.
        On ties the first walk encountered wins, siblings in start-date order.
        """
        spans = self.effective_spans(store)
        tops = [store.require(root_id)] if root_id is not None else self._sorted(store.roots(), spans)
        best_total: dict[str, int] = {}
        best_child: dict[str, Optional[str]] = {}
        for top in tops:
            stack: list[tuple[Task, bool]] = [(top, False)]
            while stack:
                task, children_done = stack.pop()
                children = self._sorted(store.children_of(task.id), spans)
                if not children_done:
                    stack.append((task, True))
                    stack.extend((child, False) for child in children)
                    continue
                chosen = None
                for child in children:
                    if chosen is None or best_total[child.id] > best_total[chosen]:
                        chosen = child.id
                best_child[task.id] = chosen
                best_total[task.id] = task.duration + (best_total[chosen] if chosen is not None else 0)

        start_id = None
        for top in tops:
            if start_id is None or best_total[top.id] > best_total[start_id]:
                start_id = top.id
        if start_id is None:
            return CriticalPath()
        path = []
        current = start_id
        while current is not None:
            path.append(current)
            current = best_child[current]
        return CriticalPath(task_ids=path, total_duration=best_total[start_id])

    def statistics(self, store: TreeStore) -> TimelineStatistics:
        """overall_progress is the share of completed tasks, in percent."""
        stats = TimelineStatistics(
            total_tasks=len(store),
            root_tasks=len(store.roots()),
            max_depth=store.max_depth(),
            count_by_status={status.value: 0 for status in TaskStatus},
        )
        for task in store:
            stats.count_by_status[task.status.value] += 1
        if stats.total_tasks > 0:
            completed = stats.count_by_status[TaskStatus.COMPLETED.value]
            percent = D(completed) * 100 / D(stats.total_tasks)
            stats.overall_progress = int(percent.quantize(D(1), rounding=ROUND_HALF_UP))
        return stats

    @staticmethod
    def to_hierarchy(timeline: Timeline) -> list[dict[str, Any]]:
        """Nest the rows again: each row dict gets a "children" list."""
        nodes: dict[str, dict[str, Any]] = {}
        result = []
        for row in timeline.rows:
            node = row.to_dict()
            node["children"] = []
            nodes[row.id] = node
            parent = nodes.get(row.parent_id) if row.parent_id is not None else None
            if parent is None:
                result.append(node)
            else:
                parent["children"].append(node)
        return result

    def _preorder(self, store: TreeStore, tops: list[Task], spans: dict[str, tuple[date, date]]) -> list[Task]:
        result = []
        stack = list(reversed(self._sorted(tops, spans)))
        while stack:
            task = stack.pop()
            result.append(task)
            stack.extend(reversed(self._sorted(store.children_of(task.id), spans)))
        return result

    @staticmethod
    def _sorted(tasks: list[Task], spans: dict[str, tuple[date, date]]) -> list[Task]:
        return sorted(tasks, key=lambda t: (spans[t.id][0], t.id))


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    store = TreeStore([
        Task(id="A", title="Build", start_date=date(2024, 1, 1), end_date=date(2024, 1, 10), duration=10, has_children=True),
        Task(id="B", title="Design", start_date=date(2024, 1, 1), end_date=date(2024, 1, 3), duration=3, parent_id="A", level=1),
        Task(id="C", title="Implement", start_date=date(2024, 1, 4), end_date=date(2024, 1, 12), duration=8, parent_id="A", level=1,
             status=TaskStatus.IN_PROGRESS),
    ])
    deriver = TimelineDeriver()
    timeline = deriver.derive(store)
    for row in timeline.rows:
        print(row.to_dict())
    print(deriver.critical_path(store))
    print(deriver.statistics(store))
