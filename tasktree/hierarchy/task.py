"""
The task record and its schema.

A Task is one node in the project tree. Children are not stored on the task,
they are derived from the parent_id of the other tasks (see TreeStore).

Raw records coming from a persisted snapshot or from an external generator
are parsed with TaskRecord. It is deliberately forgiving: a bad field value
falls back to its default instead of rejecting the record, because the
validator is responsible for repairing the structure afterwards.
Only a record without a usable id cannot be turned into a Task.

Both snake_case keys and the camelCase keys written by older snapshots
(parentTaskId, startDate, adjustStartDate, ...) are accepted.
"""
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
import logging
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

MIN_DURATION = 1
MAX_DURATION = 365


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def clamp_duration(duration: int) -> int:
    """Durations are whole working days in the range 1..365."""
    return max(MIN_DURATION, min(MAX_DURATION, int(duration)))


def parse_date(value: Any) -> Optional[date]:
    """
    Accept a date, a datetime or an ISO string like "2024-01-01" or
    "2024-01-01T00:00:00.000Z". Anything else yields None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


@dataclass
class Task:
    id: str
    title: str
    start_date: date
    end_date: date
    duration: int = 1
    parent_id: Optional[str] = None
    level: int = 0
    aggregated_duration: Optional[int] = None
    adjust_start_date: bool = False
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    has_children: bool = False
    progress: int = 0
    description: str = ""
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def touch(self) -> None:
        self.updated_at = utc_timestamp()

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["start_date"] = self.start_date.isoformat()
        result["end_date"] = self.end_date.isoformat()
        result["status"] = self.status.value
        result["priority"] = self.priority.value
        return result

    def __repr__(self) -> str:
        return f"Task(id={self.id!r}, parent_id={self.parent_id!r}, level={self.level}, duration={self.duration})"


class TaskRecord(BaseModel):
    """
    Schema for one task in a flat snapshot.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(
        default=None,
        description="Opaque unique identifier of the task."
    )
    parent_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("parent_id", "parentTaskId", "parentId"),
        description="Id of the parent task, or None for a root task."
    )
    level: Optional[int] = Field(
        default=None,
        description="Cached depth. Recomputed by the validator."
    )
    title: str = Field(
        default="",
        description="Short title of the task."
    )
    description: str = Field(
        default="",
        description="Longer free text."
    )
    duration: Optional[int] = Field(
        default=None,
        description="Duration in working days."
    )
    aggregated_duration: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("aggregated_duration", "aggregatedDuration"),
    )
    start_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("start_date", "startDate"),
    )
    end_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("end_date", "endDate"),
    )
    adjust_start_date: bool = Field(
        default=False,
        validation_alias=AliasChoices("adjust_start_date", "adjustStartDate"),
    )
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    has_children: bool = Field(
        default=False,
        validation_alias=AliasChoices("has_children", "hasSubtasks"),
    )
    progress: int = 0
    created_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )
    updated_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
    )

    @field_validator("id", "parent_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, str)):
            text = str(value).strip()
            return text or None
        return None

    @field_validator("level", "duration", "aggregated_duration", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(round(float(value)))
        except (TypeError, ValueError):
            return None

    @field_validator("progress", mode="before")
    @classmethod
    def _coerce_progress(cls, value: Any) -> int:
        try:
            return max(0, min(100, int(value)))
        except (TypeError, ValueError):
            return 0

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Optional[date]:
        return parse_date(value)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> TaskStatus:
        try:
            return TaskStatus(str(value).lower())
        except ValueError:
            return TaskStatus.PENDING

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> TaskPriority:
        try:
            return TaskPriority(str(value).lower())
        except ValueError:
            return TaskPriority.MEDIUM

    @field_validator("adjust_start_date", "has_children", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return bool(value)

    def to_task(self, today: Optional[date] = None) -> Task:
        """
        Build a Task from this record. Missing dates fall back to today,
        an end before the start is moved to the start, a missing or out of range duration is clamped to 1..365.
        Raises ValueError when the record has no id.
        """
        if self.id is None:
            raise ValueError("TaskRecord has no id")
        today = today or date.today()
        start_date = self.start_date or self.end_date or today
        end_date = self.end_date or start_date
        if end_date < start_date:
            logger.warning(f"Task {self.id!r} ends {end_date} before it starts {start_date}, end moved to the start date")
            end_date = start_date
        duration = self.duration if self.duration is not None else MIN_DURATION
        now = utc_timestamp()
        return Task(
            id=self.id,
            title=self.title,
            description=self.description,
            start_date=start_date,
            end_date=end_date,
            duration=clamp_duration(duration),
            parent_id=self.parent_id,
            level=self.level if self.level is not None and self.level >= 0 else 0,
            aggregated_duration=self.aggregated_duration,
            adjust_start_date=self.adjust_start_date,
            status=self.status,
            priority=self.priority,
            has_children=self.has_children,
            progress=self.progress,
            created_at=self.created_at or now,
            updated_at=self.updated_at or now,
        )
