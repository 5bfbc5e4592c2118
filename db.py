import sqlite3
import aiosqlite
import datetime
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "exercise_catalog": (
            """CREATE TABLE exercise_catalog (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    muscle_group TEXT,
                    equipment TEXT,
                    default_rest_sec INTEGER NOT NULL DEFAULT 90,
                    image TEXT
                );""",
            ["id", "name", "muscle_group", "equipment", "default_rest_sec", "image"],
        ),
        "workout_templates": (
            """CREATE TABLE workout_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL
                );""",
            ["id", "name"],
        ),
        "template_exercises": (
            """CREATE TABLE template_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    target_sets INTEGER NOT NULL DEFAULT 3,
                    target_reps INTEGER,
                    target_weight REAL,
                    rest_seconds INTEGER,
                    FOREIGN KEY(template_id) REFERENCES workout_templates(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercise_catalog(id)
                );""",
            [
                "id",
                "template_id",
                "exercise_id",
                "position",
                "target_sets",
                "target_reps",
                "target_weight",
                "rest_seconds",
            ],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_template_id INTEGER,
                    performed_at TEXT,
                    completed_at TEXT,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'active'
                );""",
            ["id", "workout_template_id", "performed_at", "completed_at", "notes", "status"],
        ),
        "session_exercises": (
            """CREATE TABLE session_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    target_sets INTEGER NOT NULL DEFAULT 3,
                    target_reps INTEGER,
                    target_weight REAL,
                    rest_seconds INTEGER,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercise_catalog(id)
                );""",
            [
                "id",
                "session_id",
                "exercise_id",
                "position",
                "target_sets",
                "target_reps",
                "target_weight",
                "rest_seconds",
            ],
        ),
        "set_logs": (
            """CREATE TABLE set_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    session_exercise_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    weight REAL NOT NULL DEFAULT 0,
                    reps INTEGER NOT NULL DEFAULT 0,
                    rest_seconds INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_exercise_id) REFERENCES session_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "session_exercise_id",
                "exercise_id",
                "set_number",
                "weight",
                "reps",
                "rest_seconds",
                "created_at",
            ],
        ),
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

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
            conn.execute(f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;")
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def executemany(self, query: str, rows: List[Tuple]) -> None:
        with self._connection() as conn:
            conn.executemany(query, rows)

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class ExerciseCatalogRepository(BaseRepository):
    """Repository for the exercise catalog offered by the picker."""

    def add(
        self,
        name: str,
        muscle_group: Optional[str] = None,
        equipment: Optional[str] = None,
        default_rest_sec: int = 90,
        image: Optional[str] = None,
    ) -> int:
        if self.fetch_all("SELECT id FROM exercise_catalog WHERE name = ?;", (name,)):
            raise ValueError("exercise already exists")
        return self.execute(
            "INSERT INTO exercise_catalog (name, muscle_group, equipment, default_rest_sec, image) VALUES (?, ?, ?, ?, ?);",
            (name, muscle_group, equipment, default_rest_sec, image),
        )

    def fetch_all_exercises(
        self, search: Optional[str] = None
    ) -> List[Tuple[int, str, Optional[str], Optional[str], int, Optional[str]]]:
        query = "SELECT id, name, muscle_group, equipment, default_rest_sec, image FROM exercise_catalog"
        params: list[str] = []
        if search:
            query += " WHERE lower(name) LIKE ? OR lower(muscle_group) LIKE ?"
            like = f"%{search.lower()}%"
            params.extend([like, like])
        query += " ORDER BY name;"
        return self.fetch_all(query, tuple(params))

    def fetch_detail(
        self, exercise_id: int
    ) -> Tuple[int, str, Optional[str], Optional[str], int, Optional[str]]:
        rows = self.fetch_all(
            "SELECT id, name, muscle_group, equipment, default_rest_sec, image FROM exercise_catalog WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        return rows[0]


class TemplateRepository(BaseRepository):
    """Repository for workout templates and their planned exercises."""

    def create(self, name: str) -> int:
        return self.execute(
            "INSERT INTO workout_templates (name) VALUES (?);",
            (name,),
        )

    def add_exercise(
        self,
        template_id: int,
        exercise_id: int,
        target_sets: int = 3,
        target_reps: Optional[int] = None,
        target_weight: Optional[float] = None,
        rest_seconds: Optional[int] = None,
    ) -> int:
        position = len(self.fetch_exercises(template_id))
        return self.execute(
            "INSERT INTO template_exercises (template_id, exercise_id, position, target_sets, target_reps, target_weight, rest_seconds) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (template_id, exercise_id, position, target_sets, target_reps, target_weight, rest_seconds),
        )

    def fetch_detail(self, template_id: int) -> Tuple[int, str]:
        rows = self.fetch_all(
            "SELECT id, name FROM workout_templates WHERE id = ?;",
            (template_id,),
        )
        if not rows:
            raise ValueError("template not found")
        return rows[0]

    def fetch_exercises(
        self, template_id: int
    ) -> List[Tuple[int, int, Optional[int], Optional[float], Optional[int]]]:
        return self.fetch_all(
            "SELECT exercise_id, target_sets, target_reps, target_weight, rest_seconds FROM template_exercises WHERE template_id = ? ORDER BY position, id;",
            (template_id,),
        )


class SessionRepository(BaseRepository):
    """Repository for workout session rows."""

    def __init__(self, db_path: str = "workout.db") -> None:
        super().__init__(db_path)
        self.templates = TemplateRepository(db_path)

    def start(self, template_id: Optional[int] = None) -> int:
        planned = []
        if template_id is not None:
            self.templates.fetch_detail(template_id)
            planned = self.templates.fetch_exercises(template_id)
        session_id = self.execute(
            "INSERT INTO workout_sessions (workout_template_id, performed_at, status) VALUES (?, ?, 'active');",
            (template_id, _now()),
        )
        self.executemany(
            "INSERT INTO session_exercises (session_id, exercise_id, position, target_sets, target_reps, target_weight, rest_seconds) VALUES (?, ?, ?, ?, ?, ?, ?);",
            [
                (session_id, ex_id, pos, sets, reps, weight, rest)
                for pos, (ex_id, sets, reps, weight, rest) in enumerate(planned)
            ],
        )
        return session_id

    def fetch_detail(
        self, session_id: int
    ) -> Tuple[int, Optional[int], Optional[str], Optional[str], Optional[str], str]:
        rows = self.fetch_all(
            "SELECT id, workout_template_id, performed_at, completed_at, notes, status FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise ValueError("session not found")
        return rows[0]

    def ensure_active(self, session_id: int) -> None:
        status = self.fetch_detail(session_id)[5]
        if status != "active":
            raise PermissionError(f"session is {status}")

    def complete(self, session_id: int, notes: Optional[str] = None) -> str:
        self.ensure_active(session_id)
        timestamp = _now()
        self.execute(
            "UPDATE workout_sessions SET completed_at = ?, notes = COALESCE(?, notes), status = 'completed' WHERE id = ?;",
            (timestamp, notes, session_id),
        )
        return timestamp

    def delete(self, session_id: int) -> None:
        self.ensure_active(session_id)
        self.execute("DELETE FROM set_logs WHERE session_id = ?;", (session_id,))
        self.execute("DELETE FROM session_exercises WHERE session_id = ?;", (session_id,))
        self.execute("DELETE FROM workout_sessions WHERE id = ?;", (session_id,))


class SessionExerciseRepository(BaseRepository):
    """Repository for the ordered exercises of a session."""

    _TARGET_FIELDS = ("target_sets", "target_reps", "target_weight", "rest_seconds")

    def fetch_for_session(
        self, session_id: int
    ) -> List[Tuple[int, int, int, int, Optional[int], Optional[float], Optional[int]]]:
        return self.fetch_all(
            "SELECT id, exercise_id, position, target_sets, target_reps, target_weight, rest_seconds FROM session_exercises WHERE session_id = ? ORDER BY position, id;",
            (session_id,),
        )

    def fetch_detail(
        self, session_id: int, session_exercise_id: int
    ) -> Tuple[int, int, int, int, Optional[int], Optional[float], Optional[int]]:
        rows = self.fetch_all(
            "SELECT id, exercise_id, position, target_sets, target_reps, target_weight, rest_seconds FROM session_exercises WHERE id = ? AND session_id = ?;",
            (session_exercise_id, session_id),
        )
        if not rows:
            raise ValueError("session exercise not found")
        return rows[0]

    def _renumber(self, session_id: int, ordered_ids: List[int]) -> None:
        self.executemany(
            "UPDATE session_exercises SET position = ? WHERE id = ? AND session_id = ?;",
            [(pos, se_id, session_id) for pos, se_id in enumerate(ordered_ids)],
        )

    def add(
        self,
        session_id: int,
        exercise_id: int,
        target_sets: int = 3,
        target_reps: Optional[int] = None,
        target_weight: Optional[float] = None,
        rest_seconds: Optional[int] = None,
        order: Optional[int] = None,
    ) -> int:
        if target_sets < 1:
            raise ValueError("target_sets must be at least 1")
        ids = [row[0] for row in self.fetch_for_session(session_id)]
        se_id = self.execute(
            "INSERT INTO session_exercises (session_id, exercise_id, position, target_sets, target_reps, target_weight, rest_seconds) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (session_id, exercise_id, len(ids), target_sets, target_reps, target_weight, rest_seconds),
        )
        if order is not None and 0 <= order < len(ids):
            ids.insert(order, se_id)
            self._renumber(session_id, ids)
        return se_id

    def update(self, session_id: int, session_exercise_id: int, **targets) -> None:
        self.fetch_detail(session_id, session_exercise_id)
        order = targets.pop("order", None)
        changes = {k: v for k, v in targets.items() if k in self._TARGET_FIELDS and v is not None}
        if "target_sets" in changes and changes["target_sets"] < 1:
            raise ValueError("target_sets must be at least 1")
        if changes:
            assignments = ", ".join(f"{k} = ?" for k in changes)
            self.execute(
                f"UPDATE session_exercises SET {assignments} WHERE id = ?;",
                (*changes.values(), session_exercise_id),
            )
        if order is not None:
            ids = [row[0] for row in self.fetch_for_session(session_id)]
            ids.remove(session_exercise_id)
            ids.insert(max(0, min(order, len(ids))), session_exercise_id)
            self._renumber(session_id, ids)

    def remove(self, session_id: int, session_exercise_id: int) -> None:
        self.fetch_detail(session_id, session_exercise_id)
        self.execute("DELETE FROM set_logs WHERE session_exercise_id = ?;", (session_exercise_id,))
        self.execute("DELETE FROM session_exercises WHERE id = ?;", (session_exercise_id,))
        self._renumber(session_id, [row[0] for row in self.fetch_for_session(session_id)])

    def reorder(self, session_id: int, ordered_ids: List[int]) -> None:
        current = [row[0] for row in self.fetch_for_session(session_id)]
        if sorted(current) != sorted(ordered_ids):
            raise ValueError("exercise ids must match the session exercises")
        self._renumber(session_id, ordered_ids)


class SetLogRepository(BaseRepository):
    """Repository for logged sets."""

    def add(
        self,
        session_id: int,
        session_exercise_id: int,
        exercise_id: int,
        set_number: int,
        weight: float,
        reps: int,
        rest_seconds: Optional[int] = None,
    ) -> int:
        if set_number < 1:
            raise ValueError("set_number must be positive")
        if self.fetch_all(
            "SELECT id FROM set_logs WHERE session_exercise_id = ? AND set_number = ?;",
            (session_exercise_id, set_number),
        ):
            raise ValueError("set already logged")
        return self.execute(
            "INSERT INTO set_logs (session_id, session_exercise_id, exercise_id, set_number, weight, reps, rest_seconds, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (session_id, session_exercise_id, exercise_id, set_number, weight, reps, rest_seconds, _now()),
        )

    def fetch_detail(
        self, session_id: int, set_log_id: int
    ) -> Tuple[int, int, int, int, float, int]:
        rows = self.fetch_all(
            "SELECT id, session_exercise_id, exercise_id, set_number, weight, reps FROM set_logs WHERE id = ? AND session_id = ?;",
            (set_log_id, session_id),
        )
        if not rows:
            raise ValueError("set log not found")
        return rows[0]

    def update(self, session_id: int, set_log_id: int, weight: float, reps: int) -> None:
        self.fetch_detail(session_id, set_log_id)
        self.execute(
            "UPDATE set_logs SET weight = ?, reps = ? WHERE id = ?;",
            (weight, reps, set_log_id),
        )

    def delete(self, session_id: int, set_log_id: int) -> None:
        self.fetch_detail(session_id, set_log_id)
        self.execute("DELETE FROM set_logs WHERE id = ?;", (set_log_id,))


class AsyncSessionRepository(AsyncBaseRepository):
    """Asynchronous read access used to assemble session detail payloads."""

    async def fetch_detail(
        self, session_id: int
    ) -> Tuple[int, Optional[int], Optional[str], Optional[str], Optional[str], str]:
        rows = await self.fetch_all(
            "SELECT id, workout_template_id, performed_at, completed_at, notes, status FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise ValueError("session not found")
        return rows[0]

    async def fetch_exercises(self, session_id: int) -> List[Tuple]:
        return await self.fetch_all(
            "SELECT se.id, se.exercise_id, se.position, se.target_sets, se.target_reps, se.target_weight, se.rest_seconds, "
            "c.name, c.muscle_group, c.equipment, c.default_rest_sec, c.image "
            "FROM session_exercises se LEFT JOIN exercise_catalog c ON c.id = se.exercise_id "
            "WHERE se.session_id = ? ORDER BY se.position, se.id;",
            (session_id,),
        )

    async def fetch_set_logs(self, session_id: int) -> List[Tuple]:
        return await self.fetch_all(
            "SELECT id, session_exercise_id, exercise_id, set_number, weight, reps, rest_seconds FROM set_logs WHERE session_id = ? ORDER BY set_number, id;",
            (session_id,),
        )
