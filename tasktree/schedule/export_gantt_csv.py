"""
CSV serialization of the timeline rows.

This module uses pandas to generate CSV output. The separator is a comma,
and fields containing special characters (like commas or newlines) are
quoted according to standard CSV conventions.

The hierarchy survives only as the task_parent column and as indentation of
the title. Use the snapshot for a lossless copy of the tree.

PROMPT> python -m tasktree.schedule.export_gantt_csv
"""
import pandas as pd
from tasktree.schedule.timeline import Timeline

COLUMNS = [
    "task_key",
    "task_name",
    "task_description",
    "task_start_date",
    "task_end_date",
    "task_duration",
    "task_progress",
    "task_parent",
    "task_level",
    "task_status",
    "task_priority",
    "task_color",
]


class ExportGanttCSV:
    @staticmethod
    def to_gantt_csv(timeline: Timeline, task_id_to_description: dict[str, str] = None, indent: str = "  ") -> str:
        if not isinstance(timeline, Timeline):
            raise ValueError("timeline must be a Timeline")
        if task_id_to_description is not None and not isinstance(task_id_to_description, dict):
            raise ValueError("task_id_to_description must be a dict")
        task_id_to_description = task_id_to_description or {}

        data_rows: list[dict] = []
        for row in timeline.rows:
            task_name = f"{indent * row.level}{row.title or row.id}"
            task_description = task_id_to_description.get(row.id, "")
            # No need for a description when it's identical to the title.
            if task_description == row.title:
                task_description = ""
            data_rows.append({
                "task_key": row.id,
                "task_name": task_name,
                "task_description": task_description,
                "task_start_date": row.start_date.isoformat(),
                "task_end_date": row.end_date.isoformat(),
                "task_duration": row.aggregated_duration if row.aggregated_duration is not None else row.duration,
                "task_progress": row.progress,
                "task_parent": row.parent_id or "",
                "task_level": row.level,
                "task_status": row.status.value,
                "task_priority": row.priority.value,
                "task_color": row.color,
            })

        df = pd.DataFrame(data_rows, columns=COLUMNS)
        return df.to_csv(sep=',', index=False, lineterminator='\n')

    @staticmethod
    def save(timeline: Timeline, path: str, task_id_to_description: dict[str, str] = None) -> None:
        csv_text = ExportGanttCSV.to_gantt_csv(timeline, task_id_to_description)
        with open(path, "w", encoding="utf-8") as f:
            f.write(csv_text)


if __name__ == "__main__":
    from datetime import date
    from tasktree.hierarchy.task import Task
    from tasktree.hierarchy.tree_store import TreeStore
    from tasktree.schedule.timeline import TimelineDeriver

    store = TreeStore([
        Task(id="A", title="Build, test", start_date=date(2024, 1, 1), end_date=date(2024, 1, 10), duration=10),
        Task(id="B", title="Design", start_date=date(2024, 1, 1), end_date=date(2024, 1, 3), duration=3, parent_id="A", level=1),
    ])
    timeline = TimelineDeriver().derive(store)
    print(ExportGanttCSV.to_gantt_csv(timeline, {"B": "Line1\nLine2"}))
