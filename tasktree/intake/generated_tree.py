"""
Turn a nested task tree from an external generator into flat task records.

The generator delivers JSON like:

    {"tasks": [{"title": "Design", "duration": 5, "subtasks": [...]}, ...]}

It is expected to stay within 3 levels, but nothing is assumed. Tasks nested
deeper than max_levels are dropped together with their subtasks. Missing ids
get a fresh uuid. Missing or silly durations are clamped to 1..365, and a
parent without a duration gets the sum of its children.

Dates are laid out sequentially: the first root starts at project_start,
every sibling starts where the previous one ended, and the first child starts
together with its parent.

The flat records are not trusted either. They are meant to be handed to
HierarchyValidator.load_records() like any other raw input.

PROMPT> python -m tasktree.intake.generated_tree
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Union
import json
import logging
import uuid
from pydantic import BaseModel, Field, ValidationError
from tasktree.hierarchy.task import MIN_DURATION, clamp_duration
from tasktree.schedule.working_days import WorkingDayCalendar

logger = logging.getLogger(__name__)

GENERATOR_MAX_LEVELS = 3


class GeneratedTask(BaseModel):
    id: Optional[str] = Field(
        default=None,
        description="Id chosen by the generator. A uuid is assigned when missing."
    )
    title: str = Field(
        default="",
        description="Short title of the task."
    )
    description: str = Field(
        default="",
        description="What needs to be done."
    )
    duration: Optional[float] = Field(
        default=None,
        description="Estimated duration in working days."
    )
    priority: Optional[str] = Field(
        default=None,
        description="low, medium or high."
    )
    subtasks: list["GeneratedTask"] = Field(
        default_factory=list,
        description="Nested tasks."
    )


class GeneratedTree(BaseModel):
    tasks: list[GeneratedTask] = Field(
        default_factory=list,
        description="Top level tasks."
    )


@dataclass
class IntakeResult:
    records: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    dropped_count: int = 0


class GeneratedTreeIntake:
    def __init__(self, max_levels: int = GENERATOR_MAX_LEVELS, calendar: Optional[WorkingDayCalendar] = None):
        if not isinstance(max_levels, int) or max_levels < 1:
            raise ValueError(f"max_levels must be a positive integer, but got {max_levels!r}")
        self.max_levels = max_levels
        self.calendar = calendar or WorkingDayCalendar()

    @staticmethod
    def parse(payload: Union[str, bytes, dict, GeneratedTree]) -> GeneratedTree:
        """Raises ValueError when the payload isn't a tree of tasks."""
        if isinstance(payload, GeneratedTree):
            return payload
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                raise ValueError(f"Generated tree is not valid JSON: {e}") from e
        if isinstance(payload, list):
            payload = {"tasks": payload}
        if not isinstance(payload, dict):
            raise ValueError(f"Generated tree must be an object, but got {type(payload).__name__}")
        try:
            return GeneratedTree.model_validate(payload)
        except ValidationError as e:
            raise ValueError(f"Generated tree has an unexpected shape: {e.error_count()} error(s)") from e

    def flatten(self, payload: Union[str, bytes, dict, GeneratedTree], project_start: date) -> IntakeResult:
        """Flat records in pre-order, the generated top level tasks are roots."""
        tree = self.parse(payload)
        result = IntakeResult()
        seen_ids: set[str] = set()
        cursor = project_start
        for task in tree.tasks:
            end = self._flatten_task(task, None, 0, cursor, result, seen_ids)
            cursor = end
        logger.debug(f"flatten: {len(result.records)} records, {result.dropped_count} dropped")
        return result

    def _flatten_task(self, task: GeneratedTask, parent_id: Optional[str], depth: int, start: date, result: IntakeResult, seen_ids: set[str]) -> date:
        task_id = task.id.strip() if task.id and task.id.strip() else None
        if task_id is None or task_id in seen_ids:
            if task_id is not None:
                result.warnings.append(f"Duplicate generated id {task_id!r}, assigned a new id")
            task_id = str(uuid.uuid4())
        seen_ids.add(task_id)

        title = task.title.strip()
        if not title:
            result.warnings.append(f"Generated task {task_id!r} has no title")
            title = "Untitled task"

        record: dict[str, Any] = {
            "id": task_id,
            "parent_id": parent_id,
            "level": depth,
            "has_children": False,
            "title": title,
            "description": task.description,
            "priority": task.priority,
        }
        result.records.append(record)

        children_end = start
        children_sum = 0
        if task.subtasks:
            if depth + 1 >= self.max_levels:
                dropped = self._count(task.subtasks)
                result.dropped_count += dropped
                message = f"Dropped {dropped} subtask(s) of {task_id!r}, deeper than {self.max_levels} levels"
                logger.warning(message)
                result.warnings.append(message)
            else:
                cursor = start
                for subtask in task.subtasks:
                    cursor = self._flatten_task(subtask, task_id, depth + 1, cursor, result, seen_ids)
                children_end = cursor
                record["has_children"] = True
                children_sum = sum(r["duration"] for r in result.records if r.get("parent_id") == task_id)

        if task.duration is not None and task.duration >= MIN_DURATION:
            duration = clamp_duration(round(task.duration))
        elif children_sum > 0:
            duration = clamp_duration(children_sum)
        else:
            if task.duration is not None:
                result.warnings.append(f"Generated task {task_id!r} has an invalid duration {task.duration!r}, using {MIN_DURATION}")
            duration = MIN_DURATION

        end = max(self.calendar.add_working_days(start, duration), children_end)
        record["duration"] = duration
        record["start_date"] = start.isoformat()
        record["end_date"] = end.isoformat()
        return end

    @classmethod
    def _count(cls, tasks: list[GeneratedTask]) -> int:
        count = 0
        stack = list(tasks)
        while stack:
            task = stack.pop()
            count += 1
            stack.extend(task.subtasks)
        return count


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    payload = {
        "tasks": [
            {"title": "Research", "duration": 5, "subtasks": [
                {"title": "Interviews", "duration": 3, "subtasks": [
                    {"title": "Book rooms", "duration": 1, "subtasks": [{"title": "too deep"}]},
                ]},
            ]},
            {"title": "Build", "subtasks": [{"title": "Backend", "duration": 8}, {"title": "Frontend", "duration": 6}]},
        ]
    }
    result = GeneratedTreeIntake().flatten(payload, date(2024, 1, 1))
    for record in result.records:
        print(record)
    print(result.warnings)
