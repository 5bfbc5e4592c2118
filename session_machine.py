"""Controller for a live workout session.

The controller keeps two kinds of data apart:

* the latest remote snapshot, re-mapped into :class:`Exercise` entities after
  every successful mutation and never patched locally;
* a small immutable :class:`SessionViewState` holding the pointer, edit
  buffers, menus, rest timer flags and in-flight operations.

Every user action is a public intent method. Intents that talk to the remote
system are coroutines guarded by :func:`operation`, which ignores re-entrant
calls, turns validation and gateway failures into ``state.error`` and logs
them.
"""
import asyncio
import dataclasses
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from client import SessionGateway
from errors import GatewayError, SessionValidationError
from navigation_state import NavigationState
from rest_timer import RestTimer
from session_mapper import (
    Exercise,
    Set,
    all_exercises_completed,
    map_session_to_exercises,
    session_progress,
    summarize_session,
)
from settings_schema import TrackerSettings
from workout_timer import WorkoutTimer

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    loading = "loading"
    active = "active"
    finished = "finished"
    cancelled = "cancelled"


class Menu(str, Enum):
    none = "none"
    exercise = "exercise"
    set = "set"
    picker = "picker"
    cancel_confirm = "cancel_confirm"
    finish_confirm = "finish_confirm"


class PickerMode(str, Enum):
    add = "add"
    swap = "swap"


@dataclass(frozen=True)
class ExerciseChoice:
    """Exercise returned by the picker."""

    id: int
    name: str = ""
    rest_time: Optional[str] = None
    muscle_groups: tuple[str, ...] = ()
    image_url: str = ""


@dataclass(frozen=True)
class SessionViewState:
    phase: SessionPhase = SessionPhase.loading
    current_index: int = 0
    log_weight: Optional[float] = None
    log_reps: Optional[int] = None
    editing_set_id: Optional[str] = None
    edit_weight: Optional[float] = None
    edit_reps: Optional[int] = None
    menu: Menu = Menu.none
    picker_mode: PickerMode = PickerMode.add
    selected_set_id: Optional[str] = None
    rest_timer_active: bool = False
    rest_timer_seconds: Optional[int] = None
    busy: frozenset = frozenset()
    error: Optional[str] = None


def operation(name: str, label: str):
    """Guard a remote intent: one call in flight per ``name``, errors reported."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "WorkoutSessionController", *args, **kwargs) -> bool:
            if name in self.state.busy:
                logger.debug("Ignoring %s while a previous call is in flight", name)
                return False
            if self.state.phase in (SessionPhase.finished, SessionPhase.cancelled):
                return self._reject(f"Workout is already {self.state.phase.value}")
            self._transition(busy=self.state.busy | {name}, error=None)
            try:
                return await func(self, *args, **kwargs)
            except SessionValidationError as e:
                return self._reject(str(e))
            except GatewayError as e:
                logger.error("Failed to %s in session %s: %s", label, self.session_id, e)
                self._transition(error=f"Could not {label}: {e}")
                return False
            finally:
                self._transition(busy=self.state.busy - {name})

        return wrapper

    return decorator


class WorkoutSessionController:
    """Drives one workout session against a :class:`SessionGateway`."""

    def __init__(
        self,
        gateway: SessionGateway,
        session_id: int,
        settings: Optional[TrackerSettings] = None,
        navigation_hint: Optional[str] = None,
        on_finish: Optional[Callable[[], None]] = None,
        on_exit: Optional[Callable[[], None]] = None,
        on_view_exercise: Optional[Callable[[str], None]] = None,
        workout_timer: Optional[WorkoutTimer] = None,
        rest_timer: Optional[RestTimer] = None,
    ) -> None:
        self.gateway = gateway
        self.session_id = session_id
        self.settings = settings or TrackerSettings()
        self.navigation = NavigationState(navigation_hint)
        self.on_finish = on_finish
        self.on_exit = on_exit
        self.on_view_exercise = on_view_exercise
        self.workout_timer = workout_timer or WorkoutTimer()
        self.rest_timer = rest_timer or RestTimer()
        self.rest_timer.on_complete = self._notify
        self.state = SessionViewState()
        self.session: Optional[dict] = None
        self._exercises: list[Exercise] = []
        self._listeners: list[Callable[[SessionViewState], None]] = []
        self._advance_handle: asyncio.TimerHandle | None = None
        self._added_baseline: set[int] | None = None

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[SessionViewState], None]) -> Callable[[], None]:
        """Call ``listener`` after every transition; returns an unsubscribe hook."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    def _transition(self, **changes: Any) -> None:
        new_state = dataclasses.replace(self.state, **changes)
        if new_state == self.state:
            return
        logger.debug("Session %s state change: %s", self.session_id, changes)
        self.state = new_state
        self._notify()

    def _reject(self, message: str) -> bool:
        logger.info("Session %s: %s", self.session_id, message)
        self._transition(error=message)
        return False

    def _apply_snapshot(self, session: dict) -> None:
        self.session = session
        self._exercises = map_session_to_exercises(session)
        changes: dict[str, Any] = {}
        index = self.state.current_index

        restored = self.navigation.apply(self._exercises)
        if restored is not None:
            index = restored
        if self._added_baseline is not None:
            added = [
                i
                for i, ex in enumerate(self._exercises)
                if ex.session_exercise_id not in self._added_baseline
            ]
            if added:
                index = added[-1]
                self._added_baseline = None
        index = max(0, min(index, len(self._exercises) - 1))
        if index != self.state.current_index:
            changes.update(self._pointer_reset(index))

        exercise = self._exercises[index] if self._exercises else None
        set_ids = {s.id for s in exercise.sets} if exercise else set()
        if self.state.editing_set_id not in set_ids | {None}:
            changes.update(editing_set_id=None, edit_weight=None, edit_reps=None)
        if self.state.selected_set_id not in set_ids | {None}:
            changes.update(selected_set_id=None)
        if self.state.phase is SessionPhase.loading:
            changes["phase"] = SessionPhase.active
        self._transition(**changes)

        if session.get("completed_at"):
            self.workout_timer.set_start(None)
        else:
            self.workout_timer.set_start(session.get("performed_at"))

    def _pointer_reset(self, index: int) -> dict:
        return {
            "current_index": index,
            "log_weight": None,
            "log_reps": None,
            "editing_set_id": None,
            "edit_weight": None,
            "edit_reps": None,
            "selected_set_id": None,
        }

    async def _refresh(self) -> None:
        self._apply_snapshot(await self.gateway.get_session(self.session_id))

    async def _sync(self) -> bool:
        """Refetch after a committed mutation; a failed refetch keeps the old view."""
        try:
            await self._refresh()
        except GatewayError as e:
            logger.error("Failed to refresh session %s: %s", self.session_id, e)
            self._transition(error=f"Could not refresh the workout: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def exercises(self) -> list[Exercise]:
        return list(self._exercises)

    @property
    def current_exercise(self) -> Optional[Exercise]:
        if 0 <= self.state.current_index < len(self._exercises):
            return self._exercises[self.state.current_index]
        return None

    @property
    def current_set(self) -> Optional[Set]:
        exercise = self.current_exercise
        if exercise is None:
            return None
        return next((s for s in exercise.sets if not s.completed), None)

    @property
    def completed_sets_count(self) -> int:
        exercise = self.current_exercise
        return sum(1 for s in exercise.sets if s.completed) if exercise else 0

    @property
    def selected_set(self) -> Optional[Set]:
        return self._find_set(self.state.selected_set_id)

    @property
    def is_selected_set_last(self) -> bool:
        exercise = self.current_exercise
        selected = self.selected_set
        return bool(exercise and selected and exercise.sets[-1].id == selected.id)

    @property
    def all_exercises_completed(self) -> bool:
        return all_exercises_completed(self._exercises)

    @property
    def formatted_duration(self) -> str:
        return self.workout_timer.formatted

    def progress(self) -> dict:
        return session_progress(self._exercises)

    def summary(self) -> dict:
        return summarize_session(self._exercises, self.formatted_duration)

    def is_busy(self, name: str) -> bool:
        return name in self.state.busy

    def _find_set(self, set_id: Optional[str]) -> Optional[Set]:
        exercise = self.current_exercise
        if exercise is None or set_id is None:
            return None
        return next((s for s in exercise.sets if s.id == set_id), None)

    def _require_exercise(self) -> Exercise:
        exercise = self.current_exercise
        if exercise is None:
            raise SessionValidationError("No exercise selected")
        return exercise

    # ------------------------------------------------------------------
    # Loading and navigation
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        """Fetch the session and apply any pending navigation hint."""
        try:
            await self._refresh()
        except GatewayError as e:
            logger.error("Failed to load session %s: %s", self.session_id, e)
            self._transition(error=f"Could not load the workout: {e}")
            return False
        return True

    async def refresh(self) -> bool:
        return await self._sync()

    def return_from_navigation(self, exercise_name: Optional[str]) -> None:
        """Register a new navigation hint, applied on the next snapshot."""
        self.navigation.reset(exercise_name)
        if self._exercises:
            restored = self.navigation.apply(self._exercises)
            if restored is not None:
                self._switch(restored)

    def switch_exercise(self, index: int) -> bool:
        if not 0 <= index < len(self._exercises):
            return self._reject(f"No exercise at position {index + 1}")
        self._cancel_advance()
        self._switch(index)
        return True

    def _switch(self, index: int) -> None:
        self._transition(menu=Menu.none, **self._pointer_reset(index))

    def view_exercise(self) -> Optional[str]:
        """Close the exercise menu and hand the current exercise name to the caller."""
        self._transition(menu=Menu.none)
        exercise = self.current_exercise
        if exercise is None:
            return None
        if self.on_view_exercise is not None:
            self.on_view_exercise(exercise.name)
        return exercise.name

    def _schedule_advance(self, origin: int, target: int) -> None:
        self._cancel_advance()
        delay = self.settings.auto_advance_delay
        if delay <= 0:
            self._advance(origin, target)
            return
        loop = asyncio.get_running_loop()
        self._advance_handle = loop.call_later(delay, self._advance, origin, target)

    def _advance(self, origin: int, target: int) -> None:
        self._advance_handle = None
        if self.state.current_index == origin and target < len(self._exercises):
            logger.debug("Auto-advancing session %s to exercise %s", self.session_id, target)
            self._switch(target)

    def _cancel_advance(self) -> None:
        if self._advance_handle is not None:
            self._advance_handle.cancel()
            self._advance_handle = None

    # ------------------------------------------------------------------
    # Logging sets
    # ------------------------------------------------------------------

    def set_log_weight(self, weight: Optional[float]) -> None:
        self._transition(log_weight=weight)

    def set_log_reps(self, reps: Optional[int]) -> None:
        self._transition(log_reps=reps)

    @operation("log_set", "log set")
    async def log_set(self) -> bool:
        exercise = self._require_exercise()
        current = self.current_set
        if current is None:
            raise SessionValidationError("Every set of this exercise is already logged")
        if self.state.editing_set_id is not None:
            raise SessionValidationError("Save or cancel the set being edited first")

        origin = self.state.current_index
        set_number = exercise.sets.index(current) + 1
        weight = self.state.log_weight if self.state.log_weight is not None else current.weight
        reps = self.state.log_reps if self.state.log_reps is not None else current.reps
        if not exercise.weight_loggable:
            weight = 0
        was_last = self.completed_sets_count + 1 == len(exercise.sets)

        await self.gateway.log_set(
            self.session_id,
            exercise.exercise_id,
            set_number,
            weight,
            reps,
            session_exercise_id=exercise.session_exercise_id,
        )
        logger.info(
            "Logged set %s of %s: %s x %s", set_number, exercise.name, weight, reps
        )
        self._transition(log_weight=None, log_reps=None)
        await self._sync()
        if was_last and origin < len(self._exercises) - 1:
            self._schedule_advance(origin, origin + 1)
        return True

    # ------------------------------------------------------------------
    # Set menu and editing
    # ------------------------------------------------------------------

    def open_set_menu(self, set_id: str) -> bool:
        if self._find_set(set_id) is None:
            return self._reject("Set not found")
        self._transition(menu=Menu.set, selected_set_id=set_id)
        return True

    def edit_selected_set(self) -> bool:
        target = self.selected_set
        self._transition(menu=Menu.none, selected_set_id=None)
        if target is None:
            return self._reject("No set selected")
        if target.set_log_id is None:
            return self._reject("Only logged sets can be edited")
        if self.is_busy("log_set"):
            return self._reject("Wait for the set to finish logging")
        self._transition(
            editing_set_id=target.id,
            edit_weight=target.weight,
            edit_reps=target.reps,
        )
        return True

    def set_edit_weight(self, weight: Optional[float]) -> None:
        self._transition(edit_weight=weight)

    def set_edit_reps(self, reps: Optional[int]) -> None:
        self._transition(edit_reps=reps)

    def cancel_edit(self) -> None:
        self._transition(editing_set_id=None, edit_weight=None, edit_reps=None)

    @operation("update_set", "update set")
    async def save_edit(self) -> bool:
        target = self._find_set(self.state.editing_set_id)
        if target is None:
            raise SessionValidationError("No set is being edited")
        if target.set_log_id is None:
            raise SessionValidationError("Only logged sets can be edited")
        weight = self.state.edit_weight if self.state.edit_weight is not None else target.weight
        reps = self.state.edit_reps if self.state.edit_reps is not None else target.reps

        await self.gateway.update_set(self.session_id, target.set_log_id, weight, reps)
        self._transition(editing_set_id=None, edit_weight=None, edit_reps=None)
        await self._sync()
        return True

    # ------------------------------------------------------------------
    # Adding and removing sets
    # ------------------------------------------------------------------

    @operation("add_set", "add set")
    async def add_set(self) -> bool:
        exercise = self._require_exercise()
        await self.gateway.update_session_exercise(
            self.session_id,
            exercise.session_exercise_id,
            target_sets=exercise.target_sets + 1,
        )
        await self._sync()
        return True

    @operation("remove_set", "remove set")
    async def remove_set(self, set_id: str) -> bool:
        exercise = self._require_exercise()
        target = self._find_set(set_id)
        if target is None:
            raise SessionValidationError("Set not found")
        if len(exercise.sets) <= 1:
            raise SessionValidationError(
                "Cannot remove the last set. Remove the exercise instead."
            )

        if target.completed and target.set_log_id is not None:
            await self.gateway.delete_set(self.session_id, target.set_log_id)
            try:
                await self.gateway.update_session_exercise(
                    self.session_id,
                    exercise.session_exercise_id,
                    target_sets=exercise.target_sets - 1,
                )
            except GatewayError:
                await self._sync()
                raise
        else:
            await self.gateway.update_session_exercise(
                self.session_id,
                exercise.session_exercise_id,
                target_sets=exercise.target_sets - 1,
            )
        self._transition(menu=Menu.none, selected_set_id=None)
        await self._sync()
        return True

    async def remove_selected_set(self) -> bool:
        if self.state.selected_set_id is None:
            return self._reject("No set selected")
        return await self.remove_set(self.state.selected_set_id)

    # ------------------------------------------------------------------
    # Exercise menu, picker and exercise management
    # ------------------------------------------------------------------

    def open_exercise_menu(self) -> None:
        self._transition(menu=Menu.exercise)

    def close_menu(self) -> None:
        self._transition(menu=Menu.none, selected_set_id=None)

    def open_add_exercise(self) -> None:
        self._transition(menu=Menu.picker, picker_mode=PickerMode.add)

    def open_swap_exercise(self) -> bool:
        if self.current_exercise is None:
            return self._reject("No exercise selected")
        self._transition(menu=Menu.picker, picker_mode=PickerMode.swap)
        return True

    def close_picker(self) -> None:
        self._transition(menu=Menu.none)

    async def select_exercise(self, choice: ExerciseChoice) -> bool:
        """Handle the picker's result according to the mode it was opened in."""
        if self.state.picker_mode is PickerMode.swap:
            return await self.swap_exercise(choice)
        return await self.add_exercise(choice)

    @operation("add_exercise", "add exercise")
    async def add_exercise(self, choice: ExerciseChoice) -> bool:
        baseline = {ex.session_exercise_id for ex in self._exercises}
        await self.gateway.add_session_exercise(
            self.session_id,
            choice.id,
            self.settings.default_target_sets,
            self.settings.default_target_reps,
            self.settings.default_target_weight,
        )
        self._added_baseline = baseline
        self._cancel_advance()
        self._transition(menu=Menu.none)
        await self._sync()
        return True

    @operation("swap_exercise", "swap exercise")
    async def swap_exercise(self, choice: ExerciseChoice) -> bool:
        exercise = self._require_exercise()
        position = self.state.current_index
        self._cancel_advance()

        await self.gateway.remove_session_exercise(
            self.session_id, exercise.session_exercise_id
        )
        try:
            created = await self.gateway.add_session_exercise(
                self.session_id,
                choice.id,
                exercise.target_sets,
                exercise.target_reps,
                exercise.suggested_weight,
                order=position,
            )
        except GatewayError:
            await self._sync()
            raise
        self._transition(menu=Menu.none)
        if not await self._sync():
            return True

        new_id = created.get("id") if isinstance(created, dict) else None
        ids = [ex.session_exercise_id for ex in self._exercises]
        if new_id not in ids:
            logger.warning(
                "Swapped-in exercise %s not found in session %s; skipping reorder",
                new_id,
                self.session_id,
            )
        elif ids.index(new_id) != position:
            ids.remove(new_id)
            ids.insert(min(position, len(ids)), new_id)
            await self.gateway.reorder_session_exercises(self.session_id, ids)
            await self._sync()
        index = max(0, min(position, len(self._exercises) - 1))
        self._transition(**self._pointer_reset(index))
        return True

    @operation("remove_exercise", "remove exercise")
    async def remove_exercise(self) -> bool:
        exercise = self._require_exercise()
        if len(self._exercises) <= 1:
            raise SessionValidationError("Cannot remove the last exercise.")
        remaining = len(self._exercises) - 1
        self._cancel_advance()

        await self.gateway.remove_session_exercise(
            self.session_id, exercise.session_exercise_id
        )
        index = min(self.state.current_index, remaining - 1)
        self._transition(menu=Menu.none, **self._pointer_reset(index))
        await self._sync()
        return True

    # ------------------------------------------------------------------
    # Rest timer
    # ------------------------------------------------------------------

    def start_rest_timer(self) -> bool:
        exercise = self.current_exercise
        if exercise is None:
            return False
        seconds = exercise.rest_seconds or self.settings.default_rest_seconds
        if not seconds:
            return False
        self.rest_timer.activate(seconds)
        self._transition(rest_timer_active=True, rest_timer_seconds=seconds)
        return True

    def dismiss_rest_timer(self) -> None:
        self.rest_timer.deactivate()
        self._transition(rest_timer_active=False)

    def add_rest_time(self, seconds: int) -> None:
        self.rest_timer.add_time(seconds)
        self._notify()

    def subtract_rest_time(self, seconds: int) -> None:
        self.rest_timer.subtract_time(seconds)
        self._notify()

    # ------------------------------------------------------------------
    # Finishing and cancelling
    # ------------------------------------------------------------------

    def request_finish(self) -> bool:
        if not self._exercises or not self.all_exercises_completed:
            return self._reject("Log every set before finishing the workout")
        self._transition(menu=Menu.finish_confirm)
        return True

    @operation("complete_session", "finish workout")
    async def confirm_finish(self, notes: Optional[str] = None) -> bool:
        if self.state.menu is not Menu.finish_confirm:
            raise SessionValidationError("Finishing the workout needs confirmation")
        await self.gateway.complete_session(self.session_id, notes)
        logger.info("Session %s completed", self.session_id)
        self._terminate(SessionPhase.finished)
        if self.on_finish is not None:
            self.on_finish()
        return True

    def request_cancel(self) -> None:
        self._transition(menu=Menu.cancel_confirm)

    @operation("cancel_session", "cancel workout")
    async def confirm_cancel(self) -> bool:
        if self.state.menu is not Menu.cancel_confirm:
            raise SessionValidationError("Cancelling the workout needs confirmation")
        await self.gateway.cancel_session(self.session_id)
        logger.info("Session %s cancelled", self.session_id)
        self._terminate(SessionPhase.cancelled)
        if self.on_exit is not None:
            self.on_exit()
        return True

    def _terminate(self, phase: SessionPhase) -> None:
        self.close()
        self._transition(
            phase=phase,
            menu=Menu.none,
            editing_set_id=None,
            selected_set_id=None,
            rest_timer_active=False,
        )

    def close(self) -> None:
        """Stop both timers and drop any pending auto-advance."""
        self._cancel_advance()
        self.workout_timer.stop()
        self.rest_timer.deactivate()
