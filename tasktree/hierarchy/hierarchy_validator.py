"""
Scan and repair structural corruption in a flat task collection.

Data loaded from a snapshot, or produced by an external generator, is never
assumed to be valid. The validator runs before anything else trusts the tree
and repairs what it finds instead of failing:

1. Build the id and parent -> children indexes. Records without an id are
   dropped, duplicate ids keep the first occurrence.
2. A task whose parent_id does not resolve becomes a root (level 0).
3. Cycles are found by walking up each task's parent chain while keeping the
   chain walked so far on a stack. When the walk reaches a task that is
   already on the stack, the cycle is broken by clearing the parent_id of the
   task that closed it, i.e. the last task pushed before the repeat.
   Tasks are scanned in collection order, so the choice is deterministic.
4. Levels are recomputed top-down from the roots. Tasks deeper than the
   nesting ceiling are reported, never truncated.
5. The cached has_children flag is reconciled with the children index.

Every repair is recorded as a RepairDiagnostic and logged as a warning.
Running repair() on an already repaired tree changes nothing. Only the
depth_exceeded flags are reported again, since those are never repaired.

PROMPT> python -m tasktree.hierarchy.hierarchy_validator
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional
import logging
from pydantic import ValidationError
from tasktree.hierarchy.task import Task, TaskRecord
from tasktree.hierarchy.tree_store import TreeStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_NESTING_LEVEL = 100


class RepairKind(str, Enum):
    MALFORMED_RECORD = "malformed_record"
    MISSING_ID = "missing_id"
    DUPLICATE_ID = "duplicate_id"
    DANGLING_PARENT = "dangling_parent"
    SELF_PARENT = "self_parent"
    CYCLE = "cycle"
    LEVEL_MISMATCH = "level_mismatch"
    DEPTH_EXCEEDED = "depth_exceeded"
    HAS_CHILDREN_MISMATCH = "has_children_mismatch"


@dataclass
class RepairDiagnostic:
    kind: RepairKind
    task_id: Optional[str]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "task_id": self.task_id, "message": self.message}


@dataclass
class ValidationReport:
    diagnostics: list[RepairDiagnostic] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return len(self.diagnostics) == 0

    @property
    def repaired_task_ids(self) -> set[str]:
        return {d.task_id for d in self.diagnostics if d.task_id is not None}

    def add(self, kind: RepairKind, task_id: Optional[str], message: str) -> None:
        logger.warning(f"{kind.value}: {message}")
        self.diagnostics.append(RepairDiagnostic(kind=kind, task_id=task_id, message=message))

    def extend(self, other: "ValidationReport") -> None:
        self.diagnostics.extend(other.diagnostics)

    def of_kind(self, kind: RepairKind) -> list[RepairDiagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def count_by_kind(self) -> dict[str, int]:
        result: dict[str, int] = {}
        for diagnostic in self.diagnostics:
            result[diagnostic.kind.value] = result.get(diagnostic.kind.value, 0) + 1
        return result


class HierarchyValidator:
    def __init__(self, max_nesting_level: int = DEFAULT_MAX_NESTING_LEVEL):
        if not isinstance(max_nesting_level, int) or max_nesting_level < 1:
            raise ValueError(f"max_nesting_level must be a positive integer, but got {max_nesting_level!r}")
        self.max_nesting_level = max_nesting_level

    # -------------------- loading --------------------
    def load_records(self, raw_records: Iterable[Any], today: Optional[date] = None) -> tuple[TreeStore, ValidationReport]:
        """
        Turn raw records (dicts or TaskRecord) into a repaired TreeStore.
        """
        report = ValidationReport()
        store = TreeStore()
        for index, raw in enumerate(raw_records):
            record = self._parse_record(index, raw, report)
            if record is None:
                continue
            if record.id is None:
                report.add(RepairKind.MISSING_ID, None, f"Record at index {index} has no id, dropped")
                continue
            if record.id in store:
                report.add(RepairKind.DUPLICATE_ID, record.id, f"Duplicate id {record.id!r} at index {index}, dropped")
                continue
            store.add(record.to_task(today))
        report.extend(self.repair(store))
        return store, report

    @staticmethod
    def _parse_record(index: int, raw: Any, report: ValidationReport) -> Optional[TaskRecord]:
        if isinstance(raw, TaskRecord):
            return raw
        if isinstance(raw, Task):
            return TaskRecord.model_validate(raw.to_dict())
        if not isinstance(raw, dict):
            report.add(RepairKind.MALFORMED_RECORD, None, f"Record at index {index} is a {type(raw).__name__}, expected an object")
            return None
        try:
            return TaskRecord.model_validate(raw)
        except ValidationError as e:
            report.add(RepairKind.MALFORMED_RECORD, None, f"Record at index {index} is unreadable: {e.error_count()} error(s)")
            return None

    # -------------------- repair --------------------
    def scan(self, store: TreeStore) -> ValidationReport:
        """Report what repair() would change, without touching the store."""
        return self.repair(store.clone())

    def repair(self, store: TreeStore) -> ValidationReport:
        if not isinstance(store, TreeStore):
            raise ValueError(f"store must be a TreeStore, but got {type(store)}")
        report = ValidationReport()
        store.rebuild_index()
        self._repair_dangling_parents(store, report)
        self._repair_cycles(store, report)
        self._repair_levels(store, report)
        self._repair_has_children(store, report)
        logger.debug(f"repair: {len(store)} tasks, {len(report.diagnostics)} repairs")
        return report

    def _repair_dangling_parents(self, store: TreeStore, report: ValidationReport) -> None:
        for task in store:
            if task.parent_id is None:
                continue
            if task.parent_id == task.id:
                store.set_parent(task.id, None)
                report.add(RepairKind.SELF_PARENT, task.id, f"Task {task.id!r} is its own parent, made it a root")
                continue
            if task.parent_id in store:
                continue
            missing_parent_id = task.parent_id
            store.set_parent(task.id, None)
            report.add(
                RepairKind.DANGLING_PARENT,
                task.id,
                f"Task {task.id!r} references non-existent parent {missing_parent_id!r}, made it a root"
            )

    def _repair_cycles(self, store: TreeStore, report: ValidationReport) -> None:
        proven_acyclic: set[str] = set()
        for task in store:
            if task.id in proven_acyclic:
                continue
            path: list[str] = []
            on_path: set[str] = set()
            current: Optional[Task] = task
            while current is not None:
                if current.id in on_path:
                    closing_id = path[-1]
                    cycle = path[path.index(current.id):]
                    store.set_parent(closing_id, None)
                    report.add(
                        RepairKind.CYCLE,
                        closing_id,
                        f"Cycle {' -> '.join(cycle + [current.id])}, cleared the parent of {closing_id!r}"
                    )
                    break
                if current.id in proven_acyclic:
                    break
                on_path.add(current.id)
                path.append(current.id)
                current = store.get(current.parent_id)
            proven_acyclic.update(path)

    def _repair_levels(self, store: TreeStore, report: ValidationReport) -> None:
        queue: deque[tuple[Task, int]] = deque((root, 0) for root in store.roots())
        while queue:
            task, expected_level = queue.popleft()
            if task.level != expected_level:
                report.add(
                    RepairKind.LEVEL_MISMATCH,
                    task.id,
                    f"Task {task.id!r} level mismatch. Expected {expected_level}, got {task.level}"
                )
                task.level = expected_level
            if expected_level >= self.max_nesting_level:
                report.add(
                    RepairKind.DEPTH_EXCEEDED,
                    task.id,
                    f"Task {task.id!r} is at level {expected_level + 1}, deeper than the nesting ceiling of {self.max_nesting_level}"
                )
            for child in store.children_of(task.id):
                queue.append((child, expected_level + 1))

    def _repair_has_children(self, store: TreeStore, report: ValidationReport) -> None:
        for task in store:
            actual = store.has_children(task.id)
            if task.has_children != actual:
                report.add(
                    RepairKind.HAS_CHILDREN_MISMATCH,
                    task.id,
                    f"Task {task.id!r} has_children flag was {task.has_children}, should be {actual}"
                )
                task.has_children = actual


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    corrupt = [
        {"id": "A", "parent_id": "C", "title": "A", "duration": 3},
        {"id": "B", "parent_id": "A", "title": "B", "duration": 2},
        {"id": "C", "parent_id": "B", "title": "C", "duration": 1},
        {"id": "D", "parentTaskId": "missing", "title": "D", "level": 4},
        {"title": "no id"},
    ]
    validator = HierarchyValidator()
    store, report = validator.load_records(corrupt)
    for diagnostic in report.diagnostics:
        print(diagnostic.to_dict())
    for task in store:
        print(task)
