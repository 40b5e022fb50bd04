import json
import unittest
from datetime import date
from tasktree.hierarchy.hierarchy_validator import HierarchyValidator
from tasktree.intake.generated_tree import GeneratedTreeIntake

START = date(2024, 1, 1)

PAYLOAD = {
    "tasks": [
        {"id": "research", "title": "Research", "duration": 5, "subtasks": [
            {"id": "interviews", "title": "Interviews", "duration": 3, "subtasks": [
                {"id": "rooms", "title": "Book rooms", "duration": 1, "subtasks": [
                    {"title": "too deep", "subtasks": [{"title": "even deeper"}]},
                ]},
            ]},
        ]},
        {"id": "build", "title": "Build", "subtasks": [
            {"id": "backend", "title": "Backend", "duration": 8},
            {"id": "frontend", "title": "Frontend", "duration": 6},
        ]},
    ]
}


class TestGeneratedTreeIntake(unittest.TestCase):
    def test_flatten_caps_depth(self):
        # Act
        result = GeneratedTreeIntake().flatten(PAYLOAD, START)

        # Assert
        ids = [record["id"] for record in result.records]
        self.assertEqual(ids, ["research", "interviews", "rooms", "build", "backend", "frontend"])
        self.assertEqual(result.dropped_count, 2)
        self.assertEqual(len(result.warnings), 1)

    def test_sequential_dates_and_parent_duration(self):
        result = GeneratedTreeIntake().flatten(PAYLOAD, START)

        records = {record["id"]: record for record in result.records}
        self.assertEqual(records["research"]["start_date"], "2024-01-01")
        self.assertEqual(records["research"]["end_date"], "2024-01-06")
        self.assertEqual(records["interviews"]["start_date"], "2024-01-01")
        # Build starts where Research ended and sums its children
        self.assertEqual(records["build"]["start_date"], "2024-01-06")
        self.assertEqual(records["build"]["duration"], 14)
        self.assertEqual(records["backend"]["start_date"], "2024-01-06")
        self.assertEqual(records["frontend"]["start_date"], records["backend"]["end_date"])

    def test_records_pass_validation_cleanly(self):
        result = GeneratedTreeIntake().flatten(json.dumps(PAYLOAD), START)

        store, report = HierarchyValidator().load_records(result.records)

        self.assertTrue(report.is_clean)
        self.assertEqual(store.require("rooms").level, 2)
        self.assertEqual(store.require("rooms").parent_id, "interviews")
        self.assertTrue(store.require("build").has_children)

    def test_missing_and_duplicate_ids_get_new_ids(self):
        payload = {"tasks": [{"title": "X"}, {"id": "same", "title": "Y"}, {"id": "same", "title": ""}]}

        result = GeneratedTreeIntake().flatten(payload, START)

        ids = [record["id"] for record in result.records]
        self.assertEqual(len(set(ids)), 3)
        self.assertEqual(ids[1], "same")
        self.assertEqual(result.records[2]["title"], "Untitled task")
        self.assertEqual(len(result.warnings), 2)

    def test_invalid_duration_falls_back(self):
        result = GeneratedTreeIntake().flatten({"tasks": [{"title": "X", "duration": -4}, {"title": "Y", "duration": 900}]}, START)

        self.assertEqual(result.records[0]["duration"], 1)
        self.assertEqual(result.records[1]["duration"], 365)

    def test_bare_list_is_accepted(self):
        result = GeneratedTreeIntake().flatten([{"title": "X"}], START)

        self.assertEqual(len(result.records), 1)

    def test_invalid_payloads(self):
        intake = GeneratedTreeIntake()
        with self.assertRaises(ValueError):
            intake.flatten("{broken", START)
        with self.assertRaises(ValueError):
            intake.flatten(42, START)
        with self.assertRaises(ValueError):
            intake.flatten({"tasks": "nope"}, START)
