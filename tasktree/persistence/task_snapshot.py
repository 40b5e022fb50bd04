"""
Snapshot codec for the flat task collection.

The snapshot is UTF-8 JSON:

    {"version": 1, "tasks": [{...task record...}, ...]}

A bare JSON list of records, as written by older versions, is also accepted.
Decoding only checks that the bytes hold a list of records. The records
themselves are parsed and repaired by HierarchyValidator, so a snapshot with
a dangling parent or a cycle still loads.
"""
from datetime import date
from typing import Any, Optional
import json
import logging
from tasktree.hierarchy.errors import SnapshotDecodeError
from tasktree.hierarchy.hierarchy_validator import HierarchyValidator, ValidationReport
from tasktree.hierarchy.tree_store import TreeStore
from tasktree.persistence.key_value_store import KeyValueStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
TASKS_KEY = "tasktree_tasks"


def serialize_tasks(store: TreeStore) -> bytes:
    payload = {"version": SNAPSHOT_VERSION, "tasks": store.to_list()}
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def deserialize_records(data: bytes) -> list[Any]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotDecodeError(f"Snapshot is not valid JSON: {e}") from e
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("tasks"), list):
        version = payload.get("version")
        if version != SNAPSHOT_VERSION:
            logger.warning(f"Snapshot version {version!r}, expected {SNAPSHOT_VERSION}. Reading it anyway.")
        return payload["tasks"]
    raise SnapshotDecodeError(f"Snapshot must be a list of tasks or an object with a 'tasks' list, but got {type(payload).__name__}")


class TaskSnapshotRepository:
    def __init__(self, gateway: KeyValueStore, key: str = TASKS_KEY):
        if not isinstance(gateway, KeyValueStore):
            raise ValueError(f"gateway must be a KeyValueStore, but got {type(gateway)}")
        self.gateway = gateway
        self.key = key

    def save(self, store: TreeStore) -> int:
        """Write the snapshot, return its size in bytes."""
        data = serialize_tasks(store)
        self.gateway.set(self.key, data)
        logger.debug(f"save: {len(store)} tasks, {len(data)} bytes under {self.key!r}")
        return len(data)

    def load(self, validator: HierarchyValidator, today: Optional[date] = None) -> Optional[tuple[TreeStore, ValidationReport]]:
        """None when nothing has been saved yet."""
        data = self.gateway.get(self.key)
        if data is None:
            return None
        records = deserialize_records(data)
        store, report = validator.load_records(records, today)
        logger.debug(f"load: {len(store)} tasks from {self.key!r}, {len(report.diagnostics)} repairs")
        return store, report

    def clear(self) -> None:
        self.gateway.remove(self.key)
