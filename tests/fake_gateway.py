import asyncio
import copy
from typing import Any, Optional

from errors import GatewayError

CATALOG = {
    1: {"id": 1, "name": "Bench Press", "muscle_group": "chest", "equipment": "Olympic Barbell", "default_rest_sec": 90, "image": None},
    2: {"id": 2, "name": "Squat", "muscle_group": "legs", "equipment": "Olympic Barbell", "default_rest_sec": 120, "image": None},
    3: {"id": 3, "name": "Pull Up", "muscle_group": "back", "equipment": "Bodyweight", "default_rest_sec": 60, "image": None},
    4: {"id": 4, "name": "Deadlift", "muscle_group": "back", "equipment": "Olympic Barbell", "default_rest_sec": 180, "image": None},
    5: {"id": 5, "name": "Plank", "muscle_group": "core", "equipment": "None", "default_rest_sec": None, "image": None},
}


class FakeGateway:
    """In-memory session backend with call recording and failure injection.

    Exercises added with ``order`` are appended unless ``honor_order`` is
    set. Names in ``fail_on`` raise :class:`GatewayError`; names in ``holds``
    wait for the matching event before doing anything.
    """

    def __init__(self, exercises: Optional[list[dict]] = None, performed_at: str = "2024-01-01T10:00:00+00:00") -> None:
        self.catalog = copy.deepcopy(CATALOG)
        self.session_exercises: list[dict] = []
        self.logs: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.holds: dict[str, asyncio.Event] = {}
        self.honor_order = False
        self.hidden: set[int] = set()
        self.performed_at = performed_at
        self.completed_at: Optional[str] = None
        self.status = "active"
        self._next_se = 1
        self._next_log = 1
        for ex in exercises or []:
            self._insert(**ex)

    def _insert(self, exercise_id: int, target_sets: int = 3, target_reps: Optional[int] = 10, target_weight: Optional[float] = 0.0, rest_seconds: Optional[int] = None, order: Optional[int] = None) -> int:
        se = {
            "id": self._next_se,
            "exercise_id": exercise_id,
            "target_sets": target_sets,
            "target_reps": target_reps,
            "target_weight": target_weight,
            "rest_seconds": rest_seconds,
        }
        self._next_se += 1
        if order is not None and self.honor_order:
            self.session_exercises.insert(order, se)
        else:
            self.session_exercises.append(se)
        return se["id"]

    def mutation_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "get_session"]

    def log_all(self, session_exercise_id: int) -> None:
        se = self._session_exercise(session_exercise_id)
        for number in range(1, se["target_sets"] + 1):
            self.logs.append({"id": self._next_log, "session_exercise_id": se["id"], "exercise_id": se["exercise_id"], "set_number": number, "weight": 50.0, "reps": 10})
            self._next_log += 1

    async def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.holds:
            await self.holds[name].wait()
        if name in self.fail_on:
            raise GatewayError(f"{name} failed", status_code=500)

    def _session_exercise(self, session_exercise_id: int) -> dict:
        for se in self.session_exercises:
            if se["id"] == session_exercise_id:
                return se
        raise GatewayError("session exercise not found", status_code=404)

    async def get_session(self, session_id: int) -> dict:
        await self._call("get_session", session_id)
        details = []
        for se in self.session_exercises:
            if se["id"] in self.hidden:
                continue
            logged = [
                {k: v for k, v in log.items() if k != "session_exercise_id"}
                for log in self.logs
                if log["session_exercise_id"] == se["id"] and log["set_number"] <= se["target_sets"]
            ]
            details.append(
                {
                    "session_exercise": {**se, "exercise": self.catalog.get(se["exercise_id"])},
                    "logged_sets": logged,
                    "is_completed": len(logged) >= se["target_sets"],
                }
            )
        return copy.deepcopy(
            {
                "id": session_id,
                "performed_at": self.performed_at,
                "completed_at": self.completed_at,
                "status": self.status,
                "exercises": details,
            }
        )

    async def log_set(self, session_id, exercise_id, set_number, weight, reps, session_exercise_id=None) -> dict:
        await self._call("log_set", session_id, exercise_id, set_number, weight, reps, session_exercise_id)
        se = self._session_exercise(session_exercise_id)
        if any(log["session_exercise_id"] == se["id"] and log["set_number"] == set_number for log in self.logs):
            raise GatewayError("set already logged", status_code=400)
        entry = {"id": self._next_log, "session_exercise_id": se["id"], "exercise_id": exercise_id, "set_number": set_number, "weight": weight, "reps": reps}
        self._next_log += 1
        self.logs.append(entry)
        return dict(entry)

    async def update_set(self, session_id, set_log_id, weight, reps) -> dict:
        await self._call("update_set", session_id, set_log_id, weight, reps)
        for log in self.logs:
            if log["id"] == set_log_id:
                log.update(weight=weight, reps=reps)
                return {"id": set_log_id, "weight": weight, "reps": reps}
        raise GatewayError("set log not found", status_code=404)

    async def delete_set(self, session_id, set_log_id) -> dict:
        await self._call("delete_set", session_id, set_log_id)
        self.logs = [log for log in self.logs if log["id"] != set_log_id]
        return {"status": "deleted"}

    async def add_session_exercise(self, session_id, exercise_id, target_sets, target_reps, target_weight, order=None) -> dict:
        await self._call("add_session_exercise", session_id, exercise_id, target_sets, target_reps, target_weight, order)
        se_id = self._insert(exercise_id, target_sets, target_reps, target_weight, order=order)
        return {"id": se_id, "exercise_id": exercise_id}

    async def remove_session_exercise(self, session_id, session_exercise_id) -> dict:
        await self._call("remove_session_exercise", session_id, session_exercise_id)
        self._session_exercise(session_exercise_id)
        self.session_exercises = [se for se in self.session_exercises if se["id"] != session_exercise_id]
        self.logs = [log for log in self.logs if log["session_exercise_id"] != session_exercise_id]
        return {"status": "deleted"}

    async def update_session_exercise(self, session_id, session_exercise_id, **targets) -> dict:
        await self._call("update_session_exercise", session_id, session_exercise_id, targets)
        self._session_exercise(session_exercise_id).update(targets)
        return {"status": "updated", "id": session_exercise_id}

    async def reorder_session_exercises(self, session_id, session_exercise_ids) -> dict:
        await self._call("reorder_session_exercises", session_id, list(session_exercise_ids))
        by_id = {se["id"]: se for se in self.session_exercises}
        self.session_exercises = [by_id[i] for i in session_exercise_ids]
        return {"status": "reordered"}

    async def complete_session(self, session_id, notes=None) -> dict:
        await self._call("complete_session", session_id, notes)
        self.status = "completed"
        self.completed_at = "2024-01-01T11:00:00+00:00"
        return {"status": "completed", "completed_at": self.completed_at}

    async def cancel_session(self, session_id) -> dict:
        await self._call("cancel_session", session_id)
        self.session_exercises = []
        self.logs = []
        return {"status": "cancelled"}
