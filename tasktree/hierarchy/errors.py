"""
Exceptions raised by the task tree.

Structural problems in loaded data (dangling parents, cycles, wrong levels)
are never raised. The validator repairs them and reports diagnostics instead.
Everything below is raised synchronously to the caller that requested the
mutation, and the tree is left untouched when it happens.
"""
from typing import Optional


class TaskTreeError(Exception):
    """Base class for all tasktree errors."""
    pass


class TaskNotFound(TaskTreeError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id!r}")
        self.task_id = task_id


class ConstraintViolation(TaskTreeError):
    """A requested mutation would break an invariant. Nothing was changed."""
    pass


class NestingLimitExceeded(ConstraintViolation):
    def __init__(self, max_nesting_level: int, level: int, task_id: Optional[str] = None):
        # level is 0-based, max_nesting_level counts levels
        message = f"Maximum nesting level of {max_nesting_level} exceeded. Level would be {level + 1}"
        if task_id is not None:
            message += f" for task {task_id!r}"
        super().__init__(message)
        self.max_nesting_level = max_nesting_level
        self.level = level
        self.task_id = task_id


class CyclicReparent(ConstraintViolation):
    def __init__(self, task_id: str, new_parent_id: str):
        if task_id == new_parent_id:
            message = f"Task {task_id!r} cannot be its own parent"
        else:
            message = f"Task {new_parent_id!r} is a descendant of {task_id!r}, moving would create a cycle"
        super().__init__(message)
        self.task_id = task_id
        self.new_parent_id = new_parent_id


class InvalidDateRange(ConstraintViolation):
    def __init__(self, start_date, end_date):
        super().__init__(f"End date {end_date} is before start date {start_date}")
        self.start_date = start_date
        self.end_date = end_date


class PersistenceFailure(TaskTreeError):
    """The durable write or read failed. The in-memory tree is still valid."""
    pass


class QuotaExceeded(PersistenceFailure):
    def __init__(self, key: str, size: int, capacity: int):
        super().__init__(f"Storage quota exceeded writing {key!r}: {size} bytes, capacity {capacity} bytes")
        self.key = key
        self.size = size
        self.capacity = capacity


class SnapshotDecodeError(PersistenceFailure):
    """The stored bytes are not a readable task snapshot."""
    pass
