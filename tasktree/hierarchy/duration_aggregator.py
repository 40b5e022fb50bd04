"""
Bottom-up rollup of subtree durations.

- A leaf's aggregated_duration is its own duration.
- An internal task's candidate is the sum of its children's aggregated_duration.
- When the task's own stored duration diverges from that candidate by more than
  max(20% of the larger value, 2 days), it is a conflict. The conflict is
  resolved with the configured ConflictPolicy, recorded and logged, and never
  blocks anything.
- Without a conflict the candidate wins, the children are the more detailed
  estimate.

Two entry points:
- aggregate_all(): whole tree, post-order, O(n). Used after loading/repairs.
- aggregate_from(): only the given tasks and their ancestors, deepest first.
  Used after a mutation, with the stale ids the mutation engine returned.

Arithmetic uses Decimal so the average policy rounds half up deterministically.

PROMPT> python -m tasktree.hierarchy.duration_aggregator
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal as D
from enum import Enum
from typing import Iterable, Optional
import logging
from tasktree.hierarchy.task import Task
from tasktree.hierarchy.tree_store import TreeStore

logger = logging.getLogger(__name__)

CONFLICT_THRESHOLD = D("0.2")
MIN_CONFLICT_DAYS = D(2)


class ConflictPolicy(str, Enum):
    PREFER_CHILDREN = "prefer_children"
    PREFER_OWN = "prefer_own"
    AVERAGE = "average"
    MAX = "max"
    MIN = "min"


@dataclass
class AggregationConflict:
    task_id: str
    own_duration: int
    children_sum: int
    policy: ConflictPolicy
    resolved_duration: int

    @property
    def difference(self) -> int:
        return abs(self.own_duration - self.children_sum)


@dataclass
class AggregationStatistics:
    tasks_processed: int = 0
    conflicts_detected: int = 0
    conflicts_resolved: int = 0
    updated_task_ids: list[str] = field(default_factory=list)


@dataclass
class AggregationResult:
    conflicts: list[AggregationConflict] = field(default_factory=list)
    statistics: AggregationStatistics = field(default_factory=AggregationStatistics)


def is_duration_conflict(own_duration: int, children_sum: int) -> bool:
    difference = D(abs(own_duration - children_sum))
    larger = D(max(own_duration, children_sum))
    threshold = max(larger * CONFLICT_THRESHOLD, MIN_CONFLICT_DAYS)
    return difference > threshold


def resolve_duration_conflict(own_duration: int, children_sum: int, policy: ConflictPolicy) -> int:
    if policy == ConflictPolicy.PREFER_CHILDREN:
        return children_sum
    if policy == ConflictPolicy.PREFER_OWN:
        return own_duration
    if policy == ConflictPolicy.AVERAGE:
        average = (D(own_duration) + D(children_sum)) / D(2)
        return int(average.quantize(D(1), rounding=ROUND_HALF_UP))
    if policy == ConflictPolicy.MAX:
        return max(own_duration, children_sum)
    if policy == ConflictPolicy.MIN:
        return min(own_duration, children_sum)
    raise ValueError(f"Unknown conflict policy: {policy!r}")


class DurationAggregator:
    def __init__(self, policy: ConflictPolicy = ConflictPolicy.PREFER_CHILDREN):
        if not isinstance(policy, ConflictPolicy):
            raise ValueError(f"policy must be a ConflictPolicy, but got {type(policy)}")
        self.policy = policy

    def aggregate_all(self, store: TreeStore) -> AggregationResult:
        """Recompute aggregated_duration for every task, children before parents."""
        result = AggregationResult()
        for root in store.roots():
            self._aggregate_subtree(store, root, result)
        logger.debug(f"aggregate_all: processed {result.statistics.tasks_processed} tasks, {len(result.conflicts)} conflicts")
        return result

    def aggregate_from(self, store: TreeStore, task_ids: Iterable[str]) -> AggregationResult:
        """
        Recompute only the given tasks and their ancestors.

        Tasks that no longer exist are ignored. The affected tasks are processed
        deepest level first, so every parent sees final values from its children.
        """
        result = AggregationResult()
        affected: dict[str, Task] = {}
        for task_id in task_ids:
            task = store.get(task_id)
            if task is None:
                continue
            affected[task.id] = task
            for ancestor_id in store.ancestor_ids(task.id):
                ancestor = store.get(ancestor_id)
                if ancestor is not None:
                    affected[ancestor.id] = ancestor
        for task in sorted(affected.values(), key=lambda t: -t.level):
            for child in store.children_of(task.id):
                if child.aggregated_duration is None:
                    self._aggregate_subtree(store, child, result)
            self._aggregate_node(store, task, result)
        logger.debug(f"aggregate_from: processed {result.statistics.tasks_processed} tasks")
        return result

    def check_consistency(self, store: TreeStore) -> list[tuple[str, Optional[int], int]]:
        """
        List (task_id, stored, expected) for every task whose stored
        aggregated_duration differs from a fresh computation. Nothing is written.
        """
        scratch = store.clone()
        self.aggregate_all(scratch)
        mismatches = []
        for task in store:
            expected = scratch.require(task.id).aggregated_duration
            if task.aggregated_duration != expected:
                mismatches.append((task.id, task.aggregated_duration, expected))
        return mismatches

    def _aggregate_subtree(self, store: TreeStore, top: Task, result: AggregationResult) -> None:
        # Post-order without recursion: a task is finalized the second time it is popped.
        stack: list[tuple[Task, bool]] = [(top, False)]
        while stack:
            task, children_done = stack.pop()
            if children_done:
                self._aggregate_node(store, task, result)
                continue
            stack.append((task, True))
            for child in store.children_of(task.id):
                stack.append((child, False))

    def _aggregate_node(self, store: TreeStore, task: Task, result: AggregationResult) -> None:
        result.statistics.tasks_processed += 1
        children = store.children_of(task.id)
        if not children:
            new_value = task.duration
        else:
            children_sum = sum(child.aggregated_duration if child.aggregated_duration is not None else child.duration for child in children)
            new_value = children_sum
            if is_duration_conflict(task.duration, children_sum):
                new_value = resolve_duration_conflict(task.duration, children_sum, self.policy)
                conflict = AggregationConflict(
                    task_id=task.id,
                    own_duration=task.duration,
                    children_sum=children_sum,
                    policy=self.policy,
                    resolved_duration=new_value,
                )
                result.conflicts.append(conflict)
                result.statistics.conflicts_detected += 1
                result.statistics.conflicts_resolved += 1
                logger.warning(
                    f"Duration conflict for task {task.id!r} ({task.title!r}): own={task.duration}, "
                    f"children sum={children_sum}, resolved with {self.policy.value} to {new_value}"
                )
        if task.aggregated_duration != new_value:
            task.aggregated_duration = new_value
            result.statistics.updated_task_ids.append(task.id)


if __name__ == "__main__":
    from datetime import date
    logging.basicConfig(level=logging.DEBUG)
    day = date(2024, 1, 1)
    store = TreeStore([
        Task(id="A", title="A", start_date=day, end_date=day, duration=10),
        Task(id="B", title="B", start_date=day, end_date=day, duration=3, parent_id="A", level=1),
        Task(id="C", title="C", start_date=day, end_date=day, duration=4, parent_id="A", level=1),
    ])
    for policy in ConflictPolicy:
        DurationAggregator(policy).aggregate_all(store)
        print(policy.value, store.require("A").aggregated_duration)
