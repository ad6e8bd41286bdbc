import os
import sys
import sqlite3
import threading
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    DailyLogRepository,
    ExerciseLogRepository,
    WorkoutTemplateRepository,
    merge_daily_log,
)


class MergeDailyLogTestCase(unittest.TestCase):
    def test_accumulate_adds(self) -> None:
        existing = {"steps": 5000, "water_liters": 1.5, "weight_kg": 80.0}
        updates = merge_daily_log(
            existing, {"steps": 1000, "water_liters": 0.5}, accumulate=True
        )
        self.assertEqual(updates, {"steps": 6000, "water_liters": 2.0})

    def test_replace_without_accumulate(self) -> None:
        updates = merge_daily_log({"steps": 5000}, {"steps": 1000})
        self.assertEqual(updates, {"steps": 1000})

    def test_accumulate_without_existing_value(self) -> None:
        self.assertEqual(merge_daily_log(None, {"steps": 300}, True), {"steps": 300})
        self.assertEqual(
            merge_daily_log({"steps": None}, {"steps": 300}, True), {"steps": 300}
        )

    def test_non_additive_fields_replace(self) -> None:
        updates = merge_daily_log(
            {"weight_kg": 80.0, "sleep_hours": 7}, {"weight_kg": 79.5}, accumulate=True
        )
        self.assertEqual(updates, {"weight_kg": 79.5})

    def test_unknown_field(self) -> None:
        with self.assertRaises(ValueError):
            merge_daily_log(None, {"bogus": 1})


class DailyLogRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_daily_logs.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.repo = DailyLogRepository(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_upsert_creates_and_preserves(self) -> None:
        row = self.repo.upsert("u1", "2024-05-01", {"weight_kg": 80.0, "steps": 100})
        self.assertEqual(row["weight_kg"], 80.0)
        self.assertFalse(row["workout_completed"])
        row = self.repo.upsert(
            "u1",
            "2024-05-01",
            {"workout_completed": True, "workout_duration_minutes": 12},
        )
        self.assertEqual(row["weight_kg"], 80.0)
        self.assertEqual(row["steps"], 100)
        self.assertTrue(row["workout_completed"])
        self.assertEqual(row["workout_duration_minutes"], 12)
        self.assertEqual(len(self.repo.fetch_range("u1")), 1)

    def test_users_are_isolated(self) -> None:
        self.repo.upsert("u1", "2024-05-01", {"steps": 10})
        self.repo.upsert("u2", "2024-05-01", {"steps": 20}, accumulate=True)
        self.assertEqual(self.repo.fetch("u1", "2024-05-01")["steps"], 10)
        self.assertEqual(self.repo.fetch("u2", "2024-05-01")["steps"], 20)
        self.assertIsNone(self.repo.fetch("u3", "2024-05-01"))

    def test_concurrent_accumulate(self) -> None:
        self.repo.upsert("u1", "2024-05-01", {"steps": 5000})
        errors = []

        def write():
            try:
                DailyLogRepository(self.db_path).upsert(
                    "u1", "2024-05-01", {"steps": 1000}, accumulate=True
                )
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=write) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(errors, [])
        self.assertEqual(self.repo.fetch("u1", "2024-05-01")["steps"], 7000)

    def test_many_concurrent_writers(self) -> None:
        def write():
            self.repo.upsert("u1", "2024-05-02", {"water_liters": 0.25}, accumulate=True)

        threads = [threading.Thread(target=write) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertAlmostEqual(self.repo.fetch("u1", "2024-05-02")["water_liters"], 5.0)

    def test_lock_set_is_fixed(self) -> None:
        key = (os.path.abspath(self.db_path), "u1", "2024-05-01")
        self.assertIs(DailyLogRepository._key_lock(key), DailyLogRepository._key_lock(key))
        for day in range(1, 29):
            self.repo.upsert("u1", f"2024-02-{day:02d}", {"steps": day})
        self.assertEqual(len(DailyLogRepository._locks), DailyLogRepository._LOCK_STRIPES)

    def test_unique_per_user_date(self) -> None:
        self.repo.upsert("u1", "2024-05-01", {"steps": 1})
        with self.assertRaises(sqlite3.IntegrityError):
            self.repo.execute(
                "INSERT INTO daily_logs (user_id, log_date) VALUES (?, ?);",
                ("u1", "2024-05-01"),
            )

    def test_fetch_range_and_delete(self) -> None:
        for day in ("2024-05-01", "2024-05-03", "2024-05-10"):
            self.repo.upsert("u1", day, {"steps": 1})
        rows = self.repo.fetch_range("u1", "2024-05-02", "2024-05-10")
        self.assertEqual([r["log_date"] for r in rows], ["2024-05-10", "2024-05-03"])
        self.repo.delete("u1", "2024-05-01")
        with self.assertRaises(ValueError):
            self.repo.delete("u1", "2024-05-01")


class ExerciseLogRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_exercise_logs.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.repo = ExerciseLogRepository(self.db_path)
        self.entries = [
            {
                "name": "Bench Press",
                "sets": 2,
                "reps": "8",
                "completed_sets": 2,
                "set_details": [
                    {"reps": 8, "weight_kg": 60.0, "rir": 2},
                    {"reps": 7, "weight_kg": 60.0, "rir": 1},
                ],
            },
            {"name": "Dips", "sets": 3, "completed_sets": 0, "skipped": True},
        ]

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_replace_is_idempotent(self) -> None:
        first = self.repo.replace_for_date("u1", "2024-05-01", self.entries, "4")
        second = self.repo.replace_for_date("u1", "2024-05-01", self.entries, "4")
        self.assertEqual(len(first), 2)
        self.assertEqual(len(second), 2)
        rows = self.repo.fetch_for_date("u1", "2024-05-01")
        self.assertEqual([r["exercise_name"] for r in rows], ["Bench Press", "Dips"])
        self.assertEqual(rows[0]["set_details"][1]["reps"], 7)
        self.assertEqual(rows[0]["workout_template_id"], "4")
        self.assertTrue(rows[1]["skipped"])
        self.assertIsNone(rows[1]["set_details"])

    def test_replace_keeps_other_days(self) -> None:
        self.repo.replace_for_date("u1", "2024-05-01", self.entries)
        self.repo.replace_for_date("u1", "2024-05-02", self.entries[:1])
        self.repo.replace_for_date("u1", "2024-05-02", [])
        self.assertEqual(len(self.repo.fetch_for_date("u1", "2024-05-01")), 2)
        self.assertEqual(self.repo.fetch_for_date("u1", "2024-05-02"), [])
        self.assertEqual(len(self.repo.fetch_range("u1", "2024-05-01", "2024-05-31")), 2)

    def test_add_update_delete(self) -> None:
        lid = self.repo.add("u1", "2024-05-01", {"name": "Squat", "sets": 3})
        second = self.repo.add("u1", "2024-05-01", {"name": "Lunge"})
        self.assertEqual(self.repo.fetch_detail(second, "u1")["exercise_order"], 1)
        row = self.repo.update(
            lid, "u1", {"completed_sets": 1, "set_details": [{"reps": 5}], "skipped": False}
        )
        self.assertEqual(row["completed_sets"], 1)
        self.assertEqual(row["set_details"], [{"reps": 5}])
        with self.assertRaises(ValueError):
            self.repo.update(lid, "other-user", {"notes": "x"})
        self.repo.delete(lid, "u1")
        with self.assertRaises(ValueError):
            self.repo.delete(lid, "u1")


class WorkoutTemplateRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_templates.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.repo = WorkoutTemplateRepository(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_create_and_fetch(self) -> None:
        tid = self.repo.create(
            "Push", [{"name": "Bench", "sets": 3, "reps": "5"}], duration_minutes=30
        )
        detail = self.repo.fetch_detail(tid)
        self.assertEqual(detail["name"], "Push")
        self.assertEqual(detail["type"], "strength")
        self.assertEqual(detail["exercises"][0]["name"], "Bench")
        self.assertEqual(len(self.repo.fetch_all()), 1)
        with self.assertRaises(ValueError):
            self.repo.fetch_detail(99)
        with self.assertRaises(ValueError):
            self.repo.create("Empty", [])


class SchemaMigrationTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_migration.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_missing_columns_added(self) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            "CREATE TABLE workout_templates (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, exercises TEXT NOT NULL);"
        )
        conn.execute(
            "INSERT INTO workout_templates (name, exercises) VALUES ('Old', '[]');"
        )
        conn.commit()
        conn.close()
        repo = WorkoutTemplateRepository(self.db_path)
        rows = repo.fetch_all()
        self.assertEqual(rows[0]["name"], "Old")
        self.assertEqual(rows[0]["difficulty"], "beginner")


if __name__ == "__main__":
    unittest.main()
