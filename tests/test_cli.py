import os
import sys
import io
import json
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cli
from client import TrackerClient
from db import ExerciseLogRepository, WorkoutTemplateRepository
from persistence_service import SessionPersistenceService
from rest_api import TrackerAPI
from session_service import SessionPhase, WorkoutSession


class CLITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_demo_data(self) -> None:
        cli.demo_data(self.db_path)
        templates = WorkoutTemplateRepository(self.db_path).fetch_all()
        self.assertEqual(len(templates), len(cli.DEMO_TEMPLATES))
        cli.demo_data(self.db_path)
        self.assertEqual(
            len(WorkoutTemplateRepository(self.db_path).fetch_all()),
            len(cli.DEMO_TEMPLATES),
        )

    def test_scripted_session_persists(self) -> None:
        api = TrackerAPI(db_path=self.db_path)
        client = TrackerClient(
            "http://testserver", user_id="local", http=TestClient(api.app), timeout=None
        )
        cli.demo_data(self.db_path)
        template = client.fetch_template(1)
        session = WorkoutSession.from_template(
            template, tick_interval=None, log_date="2024-05-01"
        )
        script = [
            "# bench",
            "set 8 60 2",
            "adjust -30",
            "tick 60",
            "set 8 60",
            "rest",
            "set 7 60",
            "rest",
            "skip",
            "bogus line",
            "set 10 40",
            "finish",
        ]
        code = cli.run_session(session, script, SessionPersistenceService(client))
        self.assertEqual(code, 0)
        self.assertEqual(session.phase, SessionPhase.complete)
        self.assertTrue(session.summary.finished_early)
        self.assertEqual(session.summary.total_completed_sets, 4)
        rows = ExerciseLogRepository(self.db_path).fetch_for_date("local", "2024-05-01")
        self.assertEqual([r["completed_sets"] for r in rows], [3, 0, 1])
        self.assertTrue(rows[1]["skipped"])

        out = io.StringIO()
        cli.export_logs(self.db_path, "local", "2024-05-01", "json", out)
        self.assertEqual(len(json.loads(out.getvalue())), 3)
        out = io.StringIO()
        cli.export_logs(self.db_path, "local", "2024-05-01", "csv", out)
        lines = out.getvalue().strip().splitlines()
        self.assertEqual(lines[0], ",".join(cli.EXPORT_COLUMNS))
        self.assertEqual(len(lines), 4)

    def test_rest_must_be_a_preset(self) -> None:
        with self.assertRaises(SystemExit):
            cli.main(["session", "--payload", "{}", "--rest", "45"])

    def test_session_without_plan(self) -> None:
        session = WorkoutSession.from_payload("%%%", tick_interval=None)
        self.assertEqual(cli.run_session(session, ["finish"]), 1)

    def test_unfinished_session(self) -> None:
        session = WorkoutSession.from_payload(
            '{"exercises": [{"name": "Plank", "sets": 2}]}', tick_interval=None
        )
        self.assertEqual(cli.run_session(session, ["set 1"]), 1)

    def test_apply_command_malformed(self) -> None:
        session = WorkoutSession.from_payload(
            '{"exercises": [{"name": "Plank", "sets": 2}]}', tick_interval=None
        )
        session.start()
        self.assertFalse(cli.apply_command(session, "set many"))
        self.assertFalse(cli.apply_command(session, ""))
        self.assertTrue(cli.apply_command(session, "set 5"))
        self.assertTrue(cli.apply_command(session, "adjust +"))
        self.assertEqual(session.rest_seconds_remaining, 120)
        self.assertTrue(cli.apply_command(session, "adjust -", adjust_step=15))
        self.assertEqual(session.rest_seconds_remaining, 105)
        session.teardown()


if __name__ == "__main__":
    unittest.main()
