import sqlite3
import aiosqlite
import os
import json
import datetime
import threading
from contextlib import contextmanager, asynccontextmanager
from typing import Iterable, List, Optional, Tuple


# Fields on a daily log that add up when a write asks to accumulate
ACCUMULATIVE_FIELDS = ("steps", "water_liters")

REPLACE_FIELDS = (
    "weight_kg",
    "waist_cm",
    "hips_cm",
    "chest_cm",
    "calories_consumed",
    "protein_grams",
    "carbs_grams",
    "fat_grams",
    "active_minutes",
    "workout_completed",
    "workout_type",
    "workout_duration_minutes",
    "sleep_hours",
    "sleep_quality",
    "energy_level",
    "stress_level",
    "mood_rating",
    "digestion_notes",
    "avg_heart_rate",
    "hrv",
    "notes",
    "data_source",
)

DAILY_LOG_FIELDS = ACCUMULATIVE_FIELDS + REPLACE_FIELDS

BOOLEAN_COLUMNS = {"workout_completed", "skipped"}


def merge_daily_log(
    existing: Optional[dict], incoming: dict, accumulate: bool = False
) -> dict:
    """Return the column updates that apply ``incoming`` on top of ``existing``.

    Additive fields are summed with the stored value when ``accumulate`` is
    set and both values are numeric. Every other provided field overwrites.
    Fields that are absent or ``None`` in ``incoming`` are left untouched.
    """
    unknown = set(incoming) - set(DAILY_LOG_FIELDS)
    if unknown:
        raise ValueError(f"unknown daily log fields: {', '.join(sorted(unknown))}")
    updates: dict = {}
    for field in ACCUMULATIVE_FIELDS:
        value = incoming.get(field)
        if value is None:
            continue
        current = existing.get(field) if existing else None
        if (
            accumulate
            and isinstance(current, (int, float))
            and not isinstance(current, bool)
        ):
            updates[field] = current + value
        else:
            updates[field] = value
    for field in REPLACE_FIELDS:
        value = incoming.get(field)
        if value is not None:
            updates[field] = value
    return updates


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


def _row_to_dict(cursor, row) -> dict:
    data = {col[0]: value for col, value in zip(cursor.description, row)}
    for key in BOOLEAN_COLUMNS:
        if key in data and data[key] is not None:
            data[key] = bool(data[key])
    return data


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "daily_logs": (
            """CREATE TABLE daily_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    log_date TEXT NOT NULL,
                    weight_kg REAL,
                    waist_cm REAL,
                    hips_cm REAL,
                    chest_cm REAL,
                    calories_consumed INTEGER,
                    protein_grams REAL,
                    carbs_grams REAL,
                    fat_grams REAL,
                    water_liters REAL,
                    steps INTEGER,
                    active_minutes INTEGER,
                    workout_completed INTEGER NOT NULL DEFAULT 0,
                    workout_type TEXT,
                    workout_duration_minutes INTEGER,
                    sleep_hours REAL,
                    sleep_quality INTEGER,
                    energy_level INTEGER,
                    stress_level INTEGER,
                    mood_rating INTEGER,
                    digestion_notes TEXT,
                    avg_heart_rate INTEGER,
                    hrv REAL,
                    notes TEXT,
                    data_source TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    UNIQUE (user_id, log_date)
                );""",
            [
                "id",
                "user_id",
                "log_date",
                "weight_kg",
                "waist_cm",
                "hips_cm",
                "chest_cm",
                "calories_consumed",
                "protein_grams",
                "carbs_grams",
                "fat_grams",
                "water_liters",
                "steps",
                "active_minutes",
                "workout_completed",
                "workout_type",
                "workout_duration_minutes",
                "sleep_hours",
                "sleep_quality",
                "energy_level",
                "stress_level",
                "mood_rating",
                "digestion_notes",
                "avg_heart_rate",
                "hrv",
                "notes",
                "data_source",
                "created_at",
                "updated_at",
            ],
        ),
        "workout_templates": (
            """CREATE TABLE workout_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    type TEXT NOT NULL DEFAULT 'strength',
                    difficulty TEXT NOT NULL DEFAULT 'beginner',
                    duration_minutes INTEGER,
                    exercises TEXT NOT NULL,
                    created_at TEXT
                );""",
            [
                "id",
                "name",
                "description",
                "type",
                "difficulty",
                "duration_minutes",
                "exercises",
                "created_at",
            ],
        ),
        "exercise_logs": (
            """CREATE TABLE exercise_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    log_date TEXT NOT NULL,
                    workout_template_id TEXT,
                    exercise_name TEXT NOT NULL,
                    exercise_order INTEGER NOT NULL DEFAULT 0,
                    prescribed_sets INTEGER,
                    prescribed_reps TEXT,
                    prescribed_rir INTEGER,
                    completed_sets INTEGER,
                    set_details TEXT,
                    notes TEXT,
                    skipped INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT
                );""",
            [
                "id",
                "user_id",
                "log_date",
                "workout_template_id",
                "exercise_name",
                "exercise_order",
                "prescribed_sets",
                "prescribed_reps",
                "prescribed_rir",
                "completed_sets",
                "set_details",
                "notes",
                "skipped",
                "created_at",
            ],
        ),
    }

    def __init__(self, db_path: str = "tracker.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._ensure_indexes()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path, timeout=30)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_indexes(self) -> None:
        with self._connection() as conn:
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_exercise_logs_user_date "
                "ON exercise_logs (user_id, log_date, exercise_order);"
            )

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "type":
                        return "'strength'"
                    if col == "difficulty":
                        return "'beginner'"
                    if col in ("workout_completed", "skipped", "exercise_order"):
                        return "0"
                    if col == "exercises":
                        return "'[]'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        with self._connection() as conn:
            cursor = conn.execute(query, params)
            return [_row_to_dict(cursor, row) for row in cursor.fetchall()]


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path, timeout=30)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


def _daily_log_sql(existing: Optional[dict], updates: dict, user_id: str, log_date: str):
    """Return the statement and parameters that persist ``updates``."""
    now = _now()
    values = {
        k: int(v) if k in BOOLEAN_COLUMNS and v is not None else v
        for k, v in updates.items()
    }
    if existing is None:
        cols = ["user_id", "log_date", *values.keys(), "created_at", "updated_at"]
        params = (user_id, log_date, *values.values(), now, now)
        placeholders = ", ".join("?" for _ in cols)
        return (
            f"INSERT INTO daily_logs ({', '.join(cols)}) VALUES ({placeholders});",
            params,
        )
    assignments = ", ".join(f"{k} = ?" for k in values)
    return (
        f"UPDATE daily_logs SET {assignments}, updated_at = ? WHERE id = ?;",
        (*values.values(), now, existing["id"]),
    )


class DailyLogRepository(BaseRepository):
    """Repository for the per-user, per-date daily aggregate.

    :meth:`upsert` is the only writer. It serializes on one of a fixed set of
    process-wide locks chosen by ``(database, user, date)`` and performs its
    read-modify-write inside a ``BEGIN IMMEDIATE`` transaction, which also
    excludes writers in other processes.
    """

    _LOCK_STRIPES = 64
    _locks = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))

    @classmethod
    def _key_lock(cls, key: tuple) -> threading.Lock:
        return cls._locks[hash(key) % len(cls._locks)]

    @staticmethod
    def _fetch_row(conn, user_id: str, log_date: str) -> Optional[dict]:
        cursor = conn.execute(
            "SELECT * FROM daily_logs WHERE user_id = ? AND log_date = ?;",
            (user_id, log_date),
        )
        row = cursor.fetchone()
        return _row_to_dict(cursor, row) if row else None

    def upsert(
        self,
        user_id: str,
        log_date: str,
        fields: dict,
        accumulate: bool = False,
    ) -> dict:
        """Create or merge the daily log for ``user_id`` on ``log_date``."""
        key = (os.path.abspath(self._db_path), user_id, log_date)
        with self._key_lock(key):
            with self._connection() as conn:
                conn.execute("BEGIN IMMEDIATE;")
                existing = self._fetch_row(conn, user_id, log_date)
                updates = merge_daily_log(existing, fields, accumulate)
                if existing is None or updates:
                    sql, params = _daily_log_sql(existing, updates, user_id, log_date)
                    conn.execute(sql, params)
                return self._fetch_row(conn, user_id, log_date)

    def fetch(self, user_id: str, log_date: str) -> Optional[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM daily_logs WHERE user_id = ? AND log_date = ?;",
            (user_id, log_date),
        )
        return rows[0] if rows else None

    def fetch_range(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> List[dict]:
        query = "SELECT * FROM daily_logs WHERE user_id = ?"
        params: list[str] = [user_id]
        if start_date:
            query += " AND log_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND log_date <= ?"
            params.append(end_date)
        query += " ORDER BY log_date DESC;"
        return self.fetch_dicts(query, tuple(params))

    def delete(self, user_id: str, log_date: str) -> None:
        if self.fetch(user_id, log_date) is None:
            raise ValueError("log not found")
        self.execute(
            "DELETE FROM daily_logs WHERE user_id = ? AND log_date = ?;",
            (user_id, log_date),
        )


class AsyncDailyLogRepository(AsyncBaseRepository):
    """Async daily-log writer for channels that run on an event loop."""

    async def upsert(
        self,
        user_id: str,
        log_date: str,
        fields: dict,
        accumulate: bool = False,
    ) -> dict:
        async with self._async_connection() as conn:
            await conn.execute("BEGIN IMMEDIATE;")
            existing = await self._fetch_row(conn, user_id, log_date)
            updates = merge_daily_log(existing, fields, accumulate)
            if existing is None or updates:
                sql, params = _daily_log_sql(existing, updates, user_id, log_date)
                await conn.execute(sql, params)
            return await self._fetch_row(conn, user_id, log_date)

    @staticmethod
    async def _fetch_row(conn, user_id: str, log_date: str) -> Optional[dict]:
        cursor = await conn.execute(
            "SELECT * FROM daily_logs WHERE user_id = ? AND log_date = ?;",
            (user_id, log_date),
        )
        row = await cursor.fetchone()
        return _row_to_dict(cursor, row) if row else None

    async def fetch(self, user_id: str, log_date: str) -> Optional[dict]:
        async with self._async_connection() as conn:
            return await self._fetch_row(conn, user_id, log_date)


def _exercise_log_dict(cursor, row) -> dict:
    data = _row_to_dict(cursor, row)
    raw = data.get("set_details")
    data["set_details"] = json.loads(raw) if raw else None
    return data


def _dump_set_details(details: Optional[Iterable]) -> Optional[str]:
    if details is None:
        return None
    out = []
    for item in details:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        out.append(item)
    return json.dumps(out)


class ExerciseLogRepository(BaseRepository):
    """Repository for per-exercise workout log rows."""

    _INSERT = (
        "INSERT INTO exercise_logs (user_id, log_date, workout_template_id, exercise_name, "
        "exercise_order, prescribed_sets, prescribed_reps, prescribed_rir, completed_sets, "
        "set_details, notes, skipped, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);"
    )

    @staticmethod
    def _insert_params(
        user_id: str,
        log_date: str,
        workout_template_id: Optional[str],
        entry: dict,
        order: int,
    ) -> tuple:
        return (
            user_id,
            log_date,
            workout_template_id,
            entry["name"],
            entry.get("exercise_order") if entry.get("exercise_order") is not None else order,
            entry.get("sets"),
            entry.get("reps"),
            entry.get("rir"),
            entry.get("completed_sets"),
            _dump_set_details(entry.get("set_details")),
            entry.get("notes"),
            int(bool(entry.get("skipped", False))),
            _now(),
        )

    def replace_for_date(
        self,
        user_id: str,
        log_date: str,
        exercises: List[dict],
        workout_template_id: Optional[str] = None,
    ) -> List[dict]:
        """Replace every log row of ``user_id`` on ``log_date`` with ``exercises``.

        Delete and insert share one transaction, so replaying the same write
        leaves the same rows behind.
        """
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            conn.execute(
                "DELETE FROM exercise_logs WHERE user_id = ? AND log_date = ?;",
                (user_id, log_date),
            )
            for idx, entry in enumerate(exercises):
                conn.execute(
                    self._INSERT,
                    self._insert_params(user_id, log_date, workout_template_id, entry, idx),
                )
            cursor = conn.execute(
                "SELECT * FROM exercise_logs WHERE user_id = ? AND log_date = ? "
                "ORDER BY exercise_order, id;",
                (user_id, log_date),
            )
            return [_exercise_log_dict(cursor, row) for row in cursor.fetchall()]

    def add(
        self,
        user_id: str,
        log_date: str,
        entry: dict,
        workout_template_id: Optional[str] = None,
    ) -> int:
        order = entry.get("exercise_order")
        if order is None:
            rows = self.fetch_all(
                "SELECT COALESCE(MAX(exercise_order) + 1, 0) FROM exercise_logs "
                "WHERE user_id = ? AND log_date = ?;",
                (user_id, log_date),
            )
            order = rows[0][0]
        return self.execute(
            self._INSERT,
            self._insert_params(user_id, log_date, workout_template_id, entry, order),
        )

    def fetch_detail(self, entry_id: int, user_id: str) -> dict:
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM exercise_logs WHERE id = ? AND user_id = ?;",
                (entry_id, user_id),
            )
            row = cursor.fetchone()
            if row is None:
                raise ValueError("exercise log not found")
            return _exercise_log_dict(cursor, row)

    def fetch_for_date(self, user_id: str, log_date: str) -> List[dict]:
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM exercise_logs WHERE user_id = ? AND log_date = ? "
                "ORDER BY exercise_order, id;",
                (user_id, log_date),
            )
            return [_exercise_log_dict(cursor, row) for row in cursor.fetchall()]

    def fetch_range(
        self, user_id: str, start_date: str, end_date: str
    ) -> List[dict]:
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM exercise_logs WHERE user_id = ? AND log_date >= ? AND log_date <= ? "
                "ORDER BY log_date DESC, exercise_order;",
                (user_id, start_date, end_date),
            )
            return [_exercise_log_dict(cursor, row) for row in cursor.fetchall()]

    def update(self, entry_id: int, user_id: str, updates: dict) -> dict:
        self.fetch_detail(entry_id, user_id)
        allowed = {"completed_sets", "set_details", "notes", "skipped"}
        values = {k: v for k, v in updates.items() if k in allowed}
        if values:
            if "set_details" in values:
                values["set_details"] = _dump_set_details(values["set_details"])
            if "skipped" in values:
                values["skipped"] = int(bool(values["skipped"]))
            assignments = ", ".join(f"{k} = ?" for k in values)
            self.execute(
                f"UPDATE exercise_logs SET {assignments} WHERE id = ? AND user_id = ?;",
                (*values.values(), entry_id, user_id),
            )
        return self.fetch_detail(entry_id, user_id)

    def delete(self, entry_id: int, user_id: str) -> None:
        self.fetch_detail(entry_id, user_id)
        self.execute(
            "DELETE FROM exercise_logs WHERE id = ? AND user_id = ?;",
            (entry_id, user_id),
        )


class WorkoutTemplateRepository(BaseRepository):
    """Repository for prescribed workout templates."""

    @staticmethod
    def _decode(data: dict) -> dict:
        data["exercises"] = json.loads(data["exercises"]) if data["exercises"] else []
        return data

    def create(
        self,
        name: str,
        exercises: List[dict],
        description: Optional[str] = None,
        type: str = "strength",
        difficulty: str = "beginner",
        duration_minutes: Optional[int] = None,
    ) -> int:
        if not exercises:
            raise ValueError("template requires at least one exercise")
        return self.execute(
            "INSERT INTO workout_templates (name, description, type, difficulty, duration_minutes, exercises, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                name,
                description,
                type,
                difficulty,
                duration_minutes,
                json.dumps(exercises),
                _now(),
            ),
        )

    def fetch_all(self) -> List[dict]:
        rows = self.fetch_dicts("SELECT * FROM workout_templates ORDER BY id;")
        return [self._decode(r) for r in rows]

    def fetch_detail(self, template_id: int) -> dict:
        rows = self.fetch_dicts(
            "SELECT * FROM workout_templates WHERE id = ?;", (template_id,)
        )
        if not rows:
            raise ValueError("template not found")
        return self._decode(rows[0])
