import argparse
import csv
import io
import json
import logging
import sys
from typing import Iterable, Optional, TextIO

from db import ExerciseLogRepository, WorkoutTemplateRepository
from client import TrackerClient
from log_utils import setup_logging
from persistence_service import SessionPersistenceService
from rest_api import TrackerAPI
from session_service import REST_TIME_OPTIONS, WorkoutSession
from settings_schema import SettingsSchema, load_settings

logger = logging.getLogger(__name__)

DEMO_TEMPLATES = [
    {
        "name": "Upper Body Strength",
        "description": "Push and pull compound lifts",
        "type": "strength",
        "difficulty": "intermediate",
        "duration_minutes": 45,
        "exercises": [
            {"name": "Bench Press", "sets": 3, "reps": "6-8", "rir": 2},
            {"name": "Barbell Row", "sets": 3, "reps": "8-10", "rir": 2},
            {"name": "Overhead Press", "sets": 2, "reps": "8", "rir": 1},
        ],
    },
    {
        "name": "Lower Body",
        "description": "Squat focused session",
        "type": "strength",
        "difficulty": "beginner",
        "duration_minutes": 40,
        "exercises": [
            {"name": "Back Squat", "sets": 3, "reps": "5", "rir": 2},
            {"name": "Romanian Deadlift", "sets": 3, "reps": "8-10", "rir": 2},
            {"name": "Walking Lunge", "sets": 2, "reps": "12"},
        ],
    },
]

EXPORT_COLUMNS = [
    "log_date",
    "exercise_order",
    "exercise_name",
    "prescribed_sets",
    "prescribed_reps",
    "completed_sets",
    "skipped",
    "set_details",
]


def demo_data(db_path: str) -> None:
    """Populate the database with sample workout templates if empty."""
    templates = WorkoutTemplateRepository(db_path)
    if templates.fetch_all():
        print("Database already contains templates")
        return
    for tpl in DEMO_TEMPLATES:
        data = dict(tpl)
        templates.create(data.pop("name"), data.pop("exercises"), **data)
    print("Demo templates inserted")


def export_logs(
    db_path: str, user_id: str, log_date: str, fmt: str, out: TextIO
) -> None:
    rows = ExerciseLogRepository(db_path).fetch_for_date(user_id, log_date)
    if fmt == "json":
        json.dump(rows, out, indent=2)
        out.write("\n")
        return
    writer = csv.DictWriter(out, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        row = dict(row)
        row["set_details"] = json.dumps(row["set_details"] or [])
        writer.writerow(row)


def apply_command(session: WorkoutSession, line: str, adjust_step: int = 30) -> bool:
    """Apply one scripted command to ``session``.

    Commands: ``set REPS [WEIGHT [RIR]]``, ``skip``, ``rest`` (skip the rest
    period), ``adjust [SECONDS|+|-]``, ``pause``, ``resume``, ``tick [SECONDS]`` and
    ``finish``. Unknown or malformed lines are ignored.
    """
    parts = line.split()
    if not parts or parts[0].startswith("#"):
        return False
    cmd, args = parts[0].lower(), parts[1:]
    try:
        if cmd == "set" and args:
            set_log = {"reps": int(args[0])}
            if len(args) > 1:
                set_log["weightKg"] = float(args[1])
            if len(args) > 2:
                set_log["rir"] = int(args[2])
            return session.complete_set(set_log)
        if cmd == "skip":
            return session.skip_exercise()
        if cmd == "rest":
            return session.skip_rest()
        if cmd == "adjust":
            arg = args[0] if args else "+"
            if arg in ("+", "-"):
                return session.adjust_rest(adjust_step if arg == "+" else -adjust_step)
            return session.adjust_rest(int(arg))
        if cmd == "pause":
            return session.pause_rest()
        if cmd == "resume":
            return session.resume_rest()
        if cmd == "tick":
            for _ in range(int(args[0]) if args else 1):
                session.tick()
            return True
        if cmd == "finish":
            return session.finish()
    except ValueError:
        logger.warning("Malformed command: %s", line.strip())
        return False
    logger.warning("Unknown command: %s", line.strip())
    return False


def run_session(
    session: WorkoutSession,
    commands: Iterable[str],
    service: Optional[SessionPersistenceService] = None,
    adjust_step: int = 30,
) -> int:
    """Drive ``session`` through ``commands`` and persist it when complete."""
    if not session.start():
        print("No valid workout plan")
        return 1
    for line in commands:
        apply_command(session, line, adjust_step)
        if session.summary is not None:
            break
    if session.summary is None:
        print("Workout not finished")
        session.teardown()
        return 1
    print(json.dumps(session.summary.model_dump(), indent=2))
    if service is None:
        return 0
    result = service.persist(session)
    for message in result.messages():
        print(message)
    session.teardown()
    return 0 if result.ok else 2


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Workout tracker utility commands")
    parser.add_argument("--settings", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    demo = sub.add_parser("demo")
    demo.add_argument("--db")

    sess = sub.add_parser("session")
    src = sess.add_mutually_exclusive_group(required=True)
    src.add_argument("--template", type=int)
    src.add_argument("--payload")
    sess.add_argument("--script")
    sess.add_argument("--date")
    sess.add_argument("--url")
    sess.add_argument("--rest", type=int, choices=REST_TIME_OPTIONS)
    sess.add_argument("--no-save", action="store_true")

    exp = sub.add_parser("export")
    exp.add_argument("date")
    exp.add_argument("--db")
    exp.add_argument("--fmt", choices=["csv", "json"], default="csv")
    exp.add_argument("--out")

    srv = sub.add_parser("serve")
    srv.add_argument("--db")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.settings)
    except ValueError as e:
        print(f"Invalid settings: {e}")
        settings = SettingsSchema()
    setup_logging(settings.log_level)

    if args.cmd == "demo":
        demo_data(args.db or settings.db_path)
    elif args.cmd == "session":
        client = TrackerClient(
            args.url or settings.api_base_url,
            user_id=settings.user_id,
            api_token=settings.api_token,
        )
        kwargs = dict(
            rest_seconds=settings.rest_seconds if args.rest is None else args.rest,
            tick_interval=None,
            log_date=args.date,
        )
        if args.payload is not None:
            session = WorkoutSession.from_payload(args.payload, **kwargs)
        else:
            session = WorkoutSession.from_template(
                client.fetch_template(args.template), **kwargs
            )
        service = None if args.no_save else SessionPersistenceService(
            client, settings.workout_type
        )
        if args.script:
            with open(args.script, "r", encoding="utf-8") as f:
                return run_session(
                    session, f.readlines(), service, settings.rest_adjust_step
                )
        return run_session(session, sys.stdin, service, settings.rest_adjust_step)
    elif args.cmd == "export":
        if args.out:
            with open(args.out, "w", encoding="utf-8", newline="") as f:
                export_logs(args.db or settings.db_path, settings.user_id, args.date, args.fmt, f)
        else:
            buf = io.StringIO()
            export_logs(args.db or settings.db_path, settings.user_id, args.date, args.fmt, buf)
            print(buf.getvalue(), end="")
    elif args.cmd == "serve":
        import uvicorn

        api = TrackerAPI(db_path=args.db or settings.db_path)
        uvicorn.run(api.app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
