"""Projection of a remote session payload into exercise and set view entities.

Everything here is pure: the functions read the latest session snapshot and
return fresh objects, so callers can re-run them after every refetch instead
of patching a local copy.
"""
from dataclasses import dataclass, field
from typing import Optional

BODYWEIGHT_EQUIPMENT = {"bodyweight", "body weight", "none"}


@dataclass(frozen=True)
class Set:
    id: str
    reps: int
    weight: float
    completed: bool
    set_log_id: Optional[int] = None


@dataclass(frozen=True)
class Exercise:
    id: str
    exercise_id: int
    session_exercise_id: int
    name: str
    muscle_group: str
    target_sets: int
    target_reps: int
    suggested_weight: float
    weight_loggable: bool
    rest_seconds: Optional[int]
    max_weight_lifted: float
    image_url: str
    sets: tuple[Set, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CompletionStatus:
    completed: int
    total: int
    is_complete: bool


def format_weight(weight: float) -> str:
    """Format weight for display: ``50`` for whole numbers, ``7.5`` otherwise."""
    if weight == 0:
        return "0"
    rounded = round(weight * 10) / 10
    return str(int(rounded)) if rounded % 1 == 0 else f"{rounded:.1f}"


def _map_exercise(detail: dict) -> Exercise:
    se = detail["session_exercise"]
    catalog = se.get("exercise") or {}
    logged = detail.get("logged_sets") or []
    target_sets = se.get("target_sets") or 0
    target_reps = se.get("target_reps") or 0
    target_weight = se.get("target_weight") or 0
    by_number = {}
    for entry in logged:
        by_number.setdefault(entry["set_number"], entry)

    sets = []
    for i in range(target_sets):
        entry = by_number.get(i + 1)
        if entry is not None:
            sets.append(
                Set(
                    id=f"set-{entry['id']}",
                    set_log_id=entry["id"],
                    reps=entry["reps"],
                    weight=entry["weight"],
                    completed=True,
                )
            )
        else:
            sets.append(
                Set(
                    id=f"set-{se['id']}-{i}",
                    reps=target_reps,
                    weight=target_weight,
                    completed=False,
                )
            )

    equipment = (catalog.get("equipment") or "").strip().lower()
    rest = se.get("rest_seconds")
    if rest is None:
        rest = catalog.get("default_rest_sec")
    return Exercise(
        id=f"ex-{se['id']}",
        exercise_id=se["exercise_id"],
        session_exercise_id=se["id"],
        name=catalog.get("name") or "Unknown Exercise",
        muscle_group=(catalog.get("muscle_group") or "unknown").upper(),
        target_sets=target_sets,
        target_reps=target_reps,
        suggested_weight=target_weight,
        weight_loggable=equipment not in BODYWEIGHT_EQUIPMENT,
        rest_seconds=rest,
        max_weight_lifted=max([s["weight"] for s in logged] + [0]),
        image_url=catalog.get("image") or "",
        sets=tuple(sets),
    )


def map_session_to_exercises(session: Optional[dict]) -> list[Exercise]:
    """Return the session's exercises in remote order; empty while loading."""
    if not session or not session.get("exercises"):
        return []
    return [_map_exercise(detail) for detail in session["exercises"]]


def exercise_completion_status(exercise: Exercise) -> CompletionStatus:
    completed = sum(1 for s in exercise.sets if s.completed)
    total = len(exercise.sets)
    return CompletionStatus(completed, total, completed == total)


def all_exercises_completed(exercises: list[Exercise]) -> bool:
    return all(s.completed for ex in exercises for s in ex.sets)


def session_progress(exercises: list[Exercise]) -> dict:
    total = len(exercises)
    done = sum(1 for ex in exercises if exercise_completion_status(ex).is_complete)
    return {
        "total_exercises": total,
        "completed_exercises": done,
        "progress_percent": round(done * 100 / total) if total else 0,
    }


def best_set(exercise: Exercise) -> Optional[Set]:
    """Return the completed set with the highest weight x reps, first wins ties."""
    best = None
    for s in exercise.sets:
        if s.completed and (best is None or s.weight * s.reps > best.weight * best.reps):
            best = s
    return best


def summarize_session(exercises: list[Exercise], formatted_duration: str = "0:00") -> dict:
    completed = [s for ex in exercises for s in ex.sets if s.completed]
    return {
        "duration": formatted_duration,
        "exercises_count": len(exercises),
        "total_sets": len(completed),
        "total_reps": sum(s.reps for s in completed),
        "total_volume": sum(s.weight * s.reps for s in completed),
        "best_sets": {
            ex.name: (b.weight, b.reps)
            for ex in exercises
            if (b := best_set(ex)) is not None
        },
    }
