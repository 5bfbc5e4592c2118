import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, APIRouter
from pydantic import BaseModel, Field

from db import (
    ExerciseCatalogRepository,
    TemplateRepository,
    SessionRepository,
    SessionExerciseRepository,
    SetLogRepository,
    AsyncSessionRepository,
)

logger = logging.getLogger(__name__)


class CatalogExerciseIn(BaseModel):
    name: str
    muscle_group: Optional[str] = None
    equipment: Optional[str] = None
    default_rest_sec: int = Field(90, ge=0)
    image: Optional[str] = None


class TemplateExerciseIn(BaseModel):
    exercise_id: int
    target_sets: int = Field(3, ge=1)
    target_reps: Optional[int] = Field(None, ge=0)
    target_weight: Optional[float] = Field(None, ge=0)
    rest_seconds: Optional[int] = Field(None, ge=0)


class TemplateIn(BaseModel):
    name: str
    exercises: List[TemplateExerciseIn] = []


class StartSessionIn(BaseModel):
    template_id: Optional[int] = None


class CompleteSessionIn(BaseModel):
    notes: Optional[str] = None


class LogSetIn(BaseModel):
    exercise_id: int
    set_number: int = Field(..., ge=1)
    weight: float = Field(0.0, ge=0)
    reps: int = Field(..., ge=0)
    rest_seconds: Optional[int] = Field(None, ge=0)
    session_exercise_id: Optional[int] = None


class UpdateSetIn(BaseModel):
    weight: float = Field(..., ge=0)
    reps: int = Field(..., ge=0)


class AddSessionExerciseIn(BaseModel):
    exercise_id: int
    order: Optional[int] = Field(None, ge=0)
    target_sets: int = Field(3, ge=1)
    target_reps: Optional[int] = Field(None, ge=0)
    target_weight: Optional[float] = Field(None, ge=0)
    rest_seconds: Optional[int] = Field(None, ge=0)


class UpdateSessionExerciseIn(BaseModel):
    order: Optional[int] = Field(None, ge=0)
    target_sets: Optional[int] = Field(None, ge=1)
    target_reps: Optional[int] = Field(None, ge=0)
    target_weight: Optional[float] = Field(None, ge=0)
    rest_seconds: Optional[int] = Field(None, ge=0)


class ReorderIn(BaseModel):
    exercise_ids: List[int]


def _error(e: Exception) -> HTTPException:
    if isinstance(e, PermissionError):
        return HTTPException(status_code=409, detail=str(e))
    if "not found" in str(e):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


class SessionAPI:
    """Provides REST endpoints for live workout sessions."""

    def __init__(self, db_path: str = "workout.db") -> None:
        self.db_path = db_path
        self.catalog = ExerciseCatalogRepository(db_path)
        self.templates = TemplateRepository(db_path)
        self.sessions = SessionRepository(db_path)
        self.session_exercises = SessionExerciseRepository(db_path)
        self.set_logs = SetLogRepository(db_path)
        self.session_reader = AsyncSessionRepository(db_path)
        self.app = FastAPI(
            title="Session API",
            description="REST API for tracking live workout sessions",
        )
        self._setup_routes()

    @staticmethod
    def _catalog_entry(row) -> dict:
        ex_id, name, muscle_group, equipment, rest, image = row
        return {
            "id": ex_id,
            "name": name,
            "muscle_group": muscle_group,
            "equipment": equipment,
            "default_rest_sec": rest,
            "image": image,
        }

    async def session_detail(self, session_id: int) -> dict:
        sid, template_id, performed_at, completed_at, notes, status = (
            await self.session_reader.fetch_detail(session_id)
        )
        exercises = await self.session_reader.fetch_exercises(session_id)
        logs = await self.session_reader.fetch_set_logs(session_id)
        by_exercise: dict[int, list[dict]] = {}
        for log_id, se_id, ex_id, set_number, weight, reps, rest in logs:
            by_exercise.setdefault(se_id, []).append(
                {
                    "id": log_id,
                    "exercise_id": ex_id,
                    "set_number": set_number,
                    "weight": weight,
                    "reps": reps,
                    "rest_seconds": rest,
                }
            )
        details = []
        completed = 0
        for (
            se_id,
            ex_id,
            position,
            target_sets,
            target_reps,
            target_weight,
            rest_seconds,
            name,
            muscle_group,
            equipment,
            default_rest,
            image,
        ) in exercises:
            logged = [s for s in by_exercise.get(se_id, []) if s["set_number"] <= target_sets]
            is_completed = len(logged) >= target_sets
            if is_completed:
                completed += 1
            details.append(
                {
                    "session_exercise": {
                        "id": se_id,
                        "workout_session_id": sid,
                        "exercise_id": ex_id,
                        "order": position,
                        "target_sets": target_sets,
                        "target_reps": target_reps,
                        "target_weight": target_weight,
                        "rest_seconds": rest_seconds,
                        "exercise": None
                        if name is None
                        else self._catalog_entry(
                            (ex_id, name, muscle_group, equipment, default_rest, image)
                        ),
                    },
                    "logged_sets": logged,
                    "is_completed": is_completed,
                }
            )
        total = len(details)
        return {
            "id": sid,
            "workout_template_id": template_id,
            "performed_at": performed_at,
            "completed_at": completed_at,
            "notes": notes,
            "status": status,
            "exercises": details,
            "progress": {
                "total_exercises": total,
                "completed_exercises": completed,
                "progress_percent": round(completed * 100 / total) if total else 0,
            },
        }

    def _setup_routes(self) -> None:
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        sessions_router = APIRouter(prefix="/workout-sessions", tags=["Sessions"])

        @self.app.get("/health")
        def health():
            return {"status": "ok"}

        @exercises_router.get("")
        def list_exercises(search: str | None = None):
            return [self._catalog_entry(r) for r in self.catalog.fetch_all_exercises(search)]

        @exercises_router.post("")
        def add_catalog_exercise(data: CatalogExerciseIn):
            try:
                ex_id = self.catalog.add(
                    data.name,
                    data.muscle_group,
                    data.equipment,
                    data.default_rest_sec,
                    data.image,
                )
            except ValueError as e:
                raise _error(e)
            return {"id": ex_id}

        @self.app.post("/templates")
        def create_template(data: TemplateIn):
            try:
                for ex in data.exercises:
                    self.catalog.fetch_detail(ex.exercise_id)
            except ValueError as e:
                raise _error(e)
            template_id = self.templates.create(data.name)
            for ex in data.exercises:
                self.templates.add_exercise(
                    template_id,
                    ex.exercise_id,
                    ex.target_sets,
                    ex.target_reps,
                    ex.target_weight,
                    ex.rest_seconds,
                )
            return {"id": template_id}

        @sessions_router.post("/start")
        def start_session(data: StartSessionIn | None = None):
            template_id = data.template_id if data else None
            try:
                session_id = self.sessions.start(template_id)
            except ValueError as e:
                raise _error(e)
            logger.info("Started session %s from template %s", session_id, template_id)
            return {"id": session_id}

        @sessions_router.get("/{session_id}")
        async def get_session(session_id: int):
            try:
                return await self.session_detail(session_id)
            except ValueError as e:
                raise _error(e)

        @sessions_router.post("/{session_id}/complete")
        def complete_session(session_id: int, data: CompleteSessionIn | None = None):
            try:
                timestamp = self.sessions.complete(session_id, data.notes if data else None)
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"status": "completed", "completed_at": timestamp}

        @sessions_router.delete("/{session_id}/cancel")
        def cancel_session(session_id: int):
            try:
                self.sessions.delete(session_id)
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"status": "cancelled"}

        @sessions_router.post("/{session_id}/sets")
        def log_set(session_id: int, data: LogSetIn):
            try:
                self.sessions.ensure_active(session_id)
                if data.session_exercise_id is not None:
                    se_id, _, _, target_sets, *_ = self.session_exercises.fetch_detail(
                        session_id, data.session_exercise_id
                    )
                else:
                    matches = [
                        row
                        for row in self.session_exercises.fetch_for_session(session_id)
                        if row[1] == data.exercise_id
                    ]
                    if not matches:
                        raise ValueError("session exercise not found")
                    se_id, _, _, target_sets, *_ = matches[0]
                if data.set_number > target_sets:
                    raise ValueError("set_number exceeds target sets")
                log_id = self.set_logs.add(
                    session_id,
                    se_id,
                    data.exercise_id,
                    data.set_number,
                    data.weight,
                    data.reps,
                    data.rest_seconds,
                )
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {
                "id": log_id,
                "session_exercise_id": se_id,
                "exercise_id": data.exercise_id,
                "set_number": data.set_number,
                "weight": data.weight,
                "reps": data.reps,
            }

        @sessions_router.put("/{session_id}/sets/{set_log_id}")
        def update_set(session_id: int, set_log_id: int, data: UpdateSetIn):
            try:
                self.sessions.ensure_active(session_id)
                self.set_logs.update(session_id, set_log_id, data.weight, data.reps)
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"id": set_log_id, "weight": data.weight, "reps": data.reps}

        @sessions_router.delete("/{session_id}/sets/{set_log_id}")
        def delete_set(session_id: int, set_log_id: int):
            try:
                self.sessions.ensure_active(session_id)
                self.set_logs.delete(session_id, set_log_id)
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"status": "deleted"}

        @sessions_router.post("/{session_id}/exercises/reorder")
        def reorder_exercises(session_id: int, data: ReorderIn):
            try:
                self.sessions.ensure_active(session_id)
                self.session_exercises.reorder(session_id, data.exercise_ids)
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"status": "reordered", "exercise_ids": data.exercise_ids}

        @sessions_router.post("/{session_id}/exercises")
        def add_session_exercise(session_id: int, data: AddSessionExerciseIn):
            try:
                self.sessions.ensure_active(session_id)
                self.catalog.fetch_detail(data.exercise_id)
                se_id = self.session_exercises.add(
                    session_id,
                    data.exercise_id,
                    data.target_sets,
                    data.target_reps,
                    data.target_weight,
                    data.rest_seconds,
                    order=data.order,
                )
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"id": se_id, "exercise_id": data.exercise_id}

        @sessions_router.put("/{session_id}/exercises/{session_exercise_id}")
        def update_session_exercise(
            session_id: int, session_exercise_id: int, data: UpdateSessionExerciseIn
        ):
            try:
                self.sessions.ensure_active(session_id)
                self.session_exercises.update(
                    session_id,
                    session_exercise_id,
                    **data.model_dump(exclude_none=True),
                )
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"status": "updated", "id": session_exercise_id}

        @sessions_router.delete("/{session_id}/exercises/{session_exercise_id}")
        def remove_session_exercise(session_id: int, session_exercise_id: int):
            try:
                self.sessions.ensure_active(session_id)
                self.session_exercises.remove(session_id, session_exercise_id)
            except (ValueError, PermissionError) as e:
                raise _error(e)
            return {"status": "deleted"}

        self.app.include_router(exercises_router)
        self.app.include_router(sessions_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(SessionAPI().app)
