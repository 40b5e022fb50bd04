"""
One task tree with everything that keeps it consistent.

The workspace owns a TreeStore and runs every request through the same
sequence:

1. The mutation engine or the temporal propagator validates the request and
   changes the store. A rejected request raises and changes nothing.
2. The aggregates of the stale tasks and their ancestors are recomputed.
3. With autosave on, the flat collection is written to the key-value store.
   A failed write raises PersistenceFailure, the in-memory tree stays valid.

On load the validator always runs before anything else looks at the tree.

PROMPT> python -m tasktree.workspace
"""
from datetime import date
from typing import Any, Optional, Union
import logging
import uuid
from tasktree.hierarchy.duration_aggregator import AggregationConflict, DurationAggregator
from tasktree.hierarchy.errors import NestingLimitExceeded, PersistenceFailure
from tasktree.hierarchy.hierarchy_validator import HierarchyValidator, RepairKind, ValidationReport
from tasktree.hierarchy.mutation_engine import DeleteStrategy, MutationEngine, MutationResult
from tasktree.hierarchy.task import Task, TaskPriority, TaskStatus
from tasktree.hierarchy.tree_store import TreeStore
from tasktree.intake.generated_tree import GeneratedTreeIntake, IntakeResult
from tasktree.persistence.key_value_store import KeyValueStore
from tasktree.persistence.task_snapshot import TaskSnapshotRepository
from tasktree.schedule.date_adjustment import DateAdjustment, DateAdjustmentPreview, ProjectDateAdjuster
from tasktree.schedule.export_gantt_csv import ExportGanttCSV
from tasktree.schedule.temporal_propagator import TemporalPropagator
from tasktree.schedule.timeline import CriticalPath, Timeline, TimelineDeriver, TimelineStatistics
from tasktree.schedule.working_days import WorkingDayCalendar
from tasktree.utils.tasktree_config import TaskTreeConfig, load_persisted_settings, save_persisted_settings

logger = logging.getLogger(__name__)


class TaskTreeWorkspace:
    def __init__(self, config: Optional[TaskTreeConfig] = None, gateway: Optional[KeyValueStore] = None, today: Optional[date] = None):
        self.config = config or TaskTreeConfig()
        self.gateway = gateway
        self.today = today
        self.calendar = WorkingDayCalendar(self.config.non_working_weekday)
        self.validator = HierarchyValidator(self.config.max_nesting_level)
        self.aggregator = DurationAggregator(self.config.conflict_policy)
        self.propagator = TemporalPropagator(self.calendar)
        self.deriver = TimelineDeriver()
        self.adjuster = ProjectDateAdjuster(self.calendar)
        self.intake = GeneratedTreeIntake(calendar=self.calendar)
        self.repository = TaskSnapshotRepository(gateway) if gateway is not None else None
        self.store = TreeStore()
        self.engine = MutationEngine(self.store, self.config.max_nesting_level, self.calendar)
        self.last_report = ValidationReport()
        self.last_conflicts: list[AggregationConflict] = []

    @classmethod
    def open(cls, gateway: KeyValueStore, config: Optional[TaskTreeConfig] = None, today: Optional[date] = None) -> "TaskTreeWorkspace":
        """Apply the persisted settings, then load and repair the saved snapshot if there is one."""
        config = load_persisted_settings(gateway, config or TaskTreeConfig())
        workspace = cls(config=config, gateway=gateway, today=today)
        loaded = workspace.repository.load(workspace.validator, today)
        if loaded is not None:
            store, report = loaded
            workspace._replace_store(store, report)
        return workspace

    # -------------------- loading and validation --------------------
    def load_records(self, raw_records: list[Any]) -> ValidationReport:
        """Replace the tree with the given raw records, repaired."""
        store, report = self.validator.load_records(raw_records, self.today)
        self._replace_store(store, report)
        self._autosave()
        return report

    def revalidate(self) -> ValidationReport:
        report = self.validator.repair(self.store)
        self.last_report = report
        self.last_conflicts = self.aggregator.aggregate_all(self.store).conflicts
        # depth_exceeded is only reported, the tree is not changed for it
        repaired = [d for d in report.diagnostics if d.kind != RepairKind.DEPTH_EXCEEDED]
        if repaired:
            self._autosave()
        return report

    def scan(self) -> ValidationReport:
        return self.validator.scan(self.store)

    def import_generated_tree(self, payload: Union[str, bytes, dict], project_start: Optional[date] = None, parent_id: Optional[str] = None) -> IntakeResult:
        """
        Add a generated tree. With parent_id its roots are attached below that
        task. Generated ids that already exist get a fresh id.

        Raises NestingLimitExceeded, before anything is added, when the
        generated tree would reach the nesting ceiling.
        """
        parent = self.store.require(parent_id) if parent_id is not None else None
        if parent is not None:
            project_start = project_start or parent.start_date
        project_start = project_start or self.today or date.today()
        intake_result = self.intake.flatten(payload, project_start)
        self._rename_colliding_ids(intake_result)
        staged, report = self.validator.load_records(intake_result.records, self.today)

        base_level = parent.level + 1 if parent is not None else 0
        if len(staged) > 0:
            deepest_level = base_level + staged.max_depth() - 1
            if deepest_level >= self.engine.max_nesting_level:
                raise NestingLimitExceeded(self.engine.max_nesting_level, deepest_level, parent_id)

        staged_root_ids = [task.id for task in staged.roots()]
        for task in staged:
            task.level += base_level
            if parent is not None and task.id in staged_root_ids:
                task.parent_id = parent_id
            self.store.add(task)
        if parent is not None:
            parent.has_children = self.store.has_children(parent_id)
        report.extend(self.validator.repair(self.store))
        if parent is not None:
            for root_id in staged_root_ids:
                self.propagator.widen_ancestors(self.store, root_id)
        self.last_report = report
        self.last_conflicts = self.aggregator.aggregate_all(self.store).conflicts
        self._autosave()
        return intake_result

    def _rename_colliding_ids(self, intake_result: IntakeResult) -> None:
        renamed: dict[str, str] = {}
        for record in intake_result.records:
            if record["id"] in self.store:
                new_id = str(uuid.uuid4())
                message = f"Generated task id {record['id']!r} already exists, renamed to {new_id!r}"
                logger.warning(message)
                intake_result.warnings.append(message)
                renamed[record["id"]] = new_id
                record["id"] = new_id
        for record in intake_result.records:
            if record.get("parent_id") in renamed:
                record["parent_id"] = renamed[record["parent_id"]]

    # -------------------- structural mutations --------------------
    def create_task(self, title: str, parent_id: Optional[str] = None, **fields) -> Task:
        fields.setdefault("today", self.today)
        result = self.engine.create(title, parent_id=parent_id, **fields)
        result.stale_ids |= self.propagator.widen_ancestors(self.store, result.task_id)
        self._after_mutation(result)
        return self.store.require(result.task_id)

    def move_task(self, task_id: str, new_parent_id: Optional[str]) -> MutationResult:
        result = self.engine.move(task_id, new_parent_id)
        if result.stale_ids:
            if new_parent_id is not None:
                result.stale_ids |= self.propagator.widen_ancestors(self.store, task_id)
            self._after_mutation(result)
        return result

    def delete_task(self, task_id: str, strategy: DeleteStrategy = DeleteStrategy.CASCADE) -> MutationResult:
        result = self.engine.delete(task_id, strategy)
        self._after_mutation(result)
        return result

    def update_fields(self, task_id: str, **fields) -> MutationResult:
        result = self.engine.update_fields(task_id, **fields)
        self._after_mutation(result)
        return result

    def set_adjust_start_date(self, task_id: str, adjust_start_date: bool) -> MutationResult:
        result = self.engine.set_adjust_start_date(task_id, adjust_start_date)
        self._after_mutation(result)
        return result

    # -------------------- temporal edits --------------------
    def update_duration(self, task_id: str, duration: int) -> MutationResult:
        changed = self.propagator.set_duration(self.store, task_id, duration)
        result = MutationResult(task_id=task_id, stale_ids=changed)
        self._after_mutation(result)
        return result

    def update_dates(self, task_id: str, start_date: date, end_date: date) -> MutationResult:
        changed = self.propagator.update_dates(self.store, task_id, start_date, end_date)
        result = MutationResult(task_id=task_id, stale_ids=changed)
        self._after_mutation(result)
        return result

    def shift_span(self, task_id: str, delta_days: int) -> MutationResult:
        changed = self.propagator.shift_span(self.store, task_id, delta_days)
        result = MutationResult(task_id=task_id, stale_ids=changed)
        self._after_mutation(result)
        return result

    def preview_project_start(self, new_start: date) -> DateAdjustmentPreview:
        return self.adjuster.preview(self.store, new_start)

    def adjust_project_start(self, new_start: date) -> Optional[DateAdjustment]:
        adjustment = self.adjuster.adjust(self.store, new_start)
        if adjustment is not None:
            self._autosave()
        return adjustment

    def undo_project_start_adjustment(self) -> bool:
        restored = self.adjuster.undo(self.store)
        if restored:
            self._autosave()
        return len(restored) > 0

    # -------------------- settings --------------------
    def set_max_nesting_level(self, max_nesting_level: int) -> None:
        """
        Applies to future create and move requests. An existing tree that is
        deeper is not touched, the next validation flags it.
        """
        self.config = self.config.with_max_nesting_level(max_nesting_level)
        self.engine.set_max_nesting_level(self.config.max_nesting_level)
        self.validator.max_nesting_level = self.config.max_nesting_level
        if self.gateway is not None:
            save_persisted_settings(self.gateway, self.config)
        logger.info(f"Max nesting level set to {self.config.max_nesting_level}")

    # -------------------- derived views --------------------
    def timeline(self, root_id: Optional[str] = None) -> Timeline:
        return self.deriver.derive(self.store, root_id)

    def critical_path(self, root_id: Optional[str] = None) -> CriticalPath:
        return self.deriver.critical_path(self.store, root_id)

    def statistics(self) -> TimelineStatistics:
        return self.deriver.statistics(self.store)

    def hierarchy(self) -> list[dict[str, Any]]:
        return self.deriver.to_hierarchy(self.timeline())

    def to_gantt_csv(self) -> str:
        timeline = self.timeline()
        descriptions = {task.id: task.description for task in self.store if task.description}
        return ExportGanttCSV.to_gantt_csv(timeline, descriptions)

    # -------------------- persistence --------------------
    def save(self) -> None:
        if self.repository is None:
            raise PersistenceFailure("No key-value store configured")
        self.repository.save(self.store)

    def _autosave(self) -> None:
        if self.repository is None or not self.config.autosave:
            return
        try:
            self.repository.save(self.store)
        except PersistenceFailure as e:
            logger.error(f"Autosave failed, the in-memory tree is kept: {e}")
            raise

    def _after_mutation(self, result: MutationResult) -> None:
        aggregation = self.aggregator.aggregate_from(self.store, result.stale_ids)
        self.last_conflicts = aggregation.conflicts
        self._autosave()

    def _replace_store(self, store: TreeStore, report: ValidationReport) -> None:
        self.store = store
        self.engine.store = store
        self.last_report = report
        self.last_conflicts = self.aggregator.aggregate_all(store).conflicts


if __name__ == "__main__":
    from tasktree.persistence.key_value_store import InMemoryKeyValueStore
    logging.basicConfig(level=logging.DEBUG)
    workspace = TaskTreeWorkspace.open(InMemoryKeyValueStore(), today=date(2024, 1, 1))
    a = workspace.create_task("Launch", duration=10, start_date=date(2024, 1, 1))
    b = workspace.create_task("Design", parent_id=a.id, duration=3)
    c = workspace.create_task("Build", parent_id=a.id, duration=4, priority=TaskPriority.HIGH)
    workspace.update_fields(b.id, status=TaskStatus.COMPLETED, progress=100)
    print(f"aggregated duration of {a.title!r}: {a.aggregated_duration}")
    print(workspace.to_gantt_csv())
    print(workspace.critical_path())
