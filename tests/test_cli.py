import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import dispatch, main, render
from fake_gateway import FakeGateway
from rest_api import SessionAPI
from rest_timer import RestTimer
from seed_sample_data import seed
from session_machine import SessionPhase, WorkoutSessionController
from settings_schema import TrackerSettings
from workout_timer import WorkoutTimer

WORKOUT = [
    {"exercise_id": 1, "target_sets": 3, "target_reps": 8, "target_weight": 60.0},
    {"exercise_id": 2, "target_sets": 2, "target_reps": 5, "target_weight": 100.0},
    {"exercise_id": 3, "target_sets": 2, "target_reps": 6, "target_weight": 0.0},
]


async def tracked(exercises=WORKOUT):
    gateway = FakeGateway(exercises)
    controller = WorkoutSessionController(
        gateway,
        1,
        TrackerSettings(auto_advance_delay=0),
        workout_timer=WorkoutTimer(interval=None),
        rest_timer=RestTimer(interval=None),
    )
    await controller.load()
    return gateway, controller


@pytest.mark.asyncio
async def test_log_command_logs_and_starts_rest():
    gateway, controller = await tracked()
    assert await dispatch(controller, "log 62.5 7")
    assert ("log_set", 1, 1, 1, 62.5, 7, 1) in gateway.calls
    assert controller.state.rest_timer_active
    assert controller.rest_timer.remaining == 90

    await dispatch(controller, "rest +15")
    assert controller.rest_timer.remaining == 105
    await dispatch(controller, "rest -5")
    assert controller.rest_timer.remaining == 100
    await dispatch(controller, "rest stop")
    assert not controller.state.rest_timer_active


@pytest.mark.asyncio
async def test_navigation_commands():
    gateway, controller = await tracked()
    await dispatch(controller, "goto 3")
    assert controller.state.current_index == 2
    await dispatch(controller, "prev")
    assert controller.state.current_index == 1
    await dispatch(controller, "next")
    assert controller.state.current_index == 2


@pytest.mark.asyncio
async def test_set_commands():
    gateway, controller = await tracked()
    await dispatch(controller, "log")
    await dispatch(controller, "edit 1 65 6")
    assert ("update_set", 1, 1, 65.0, 6) in gateway.calls
    await dispatch(controller, "add-set")
    assert len(controller.current_exercise.sets) == 4
    await dispatch(controller, "remove-set")
    assert len(controller.current_exercise.sets) == 3


@pytest.mark.asyncio
async def test_remove_set_rejects_out_of_range(capsys):
    gateway, controller = await tracked()
    capsys.readouterr()
    for line in ("remove-set 0", "remove-set 4"):
        await dispatch(controller, line)
        assert capsys.readouterr().out.strip() == "No such set"
    assert len(controller.current_exercise.sets) == 3
    assert gateway.mutation_calls() == []


@pytest.mark.asyncio
async def test_exercise_commands():
    gateway, controller = await tracked()
    await dispatch(controller, "add 4")
    assert controller.current_exercise.name == "Deadlift"
    await dispatch(controller, "swap 5")
    assert controller.current_exercise.name == "Plank"
    assert [ex.name for ex in controller.exercises] == ["Bench Press", "Squat", "Pull Up", "Plank"]
    await dispatch(controller, "remove-exercise")
    assert len(controller.exercises) == 3


@pytest.mark.asyncio
async def test_finish_needs_completed_sets():
    gateway, controller = await tracked()
    assert await dispatch(controller, "finish")
    assert controller.state.phase is SessionPhase.active
    assert "finishing" in controller.state.error


@pytest.mark.asyncio
async def test_finish_and_cancel_stop_tracking(capsys):
    gateway, controller = await tracked([{"exercise_id": 1, "target_sets": 1, "target_reps": 5, "target_weight": 40.0}])
    await dispatch(controller, "log")
    assert await dispatch(controller, "finish great session") is False
    assert ("complete_session", 1, "great session") in gateway.calls
    assert "Workout complete" in capsys.readouterr().out

    gateway, controller = await tracked()
    assert await dispatch(controller, "cancel") is False
    assert controller.state.phase is SessionPhase.cancelled


@pytest.mark.asyncio
async def test_unknown_and_invalid_commands(capsys):
    gateway, controller = await tracked()
    assert await dispatch(controller, "")
    assert await dispatch(controller, "bogus")
    assert "Unknown command" in capsys.readouterr().out
    assert await dispatch(controller, "goto x")
    assert "Invalid arguments" in capsys.readouterr().out
    assert await dispatch(controller, "quit") is False


@pytest.mark.asyncio
async def test_render_shows_current_exercise():
    gateway, controller = await tracked()
    await dispatch(controller, "log 62.5 7")
    text = render(controller)
    assert "[1/3] Bench Press (CHEST)" in text
    assert "[x] set 1: 62.5 kg x 7" in text
    assert ">[ ] set 2: 60 kg x 8" in text
    await dispatch(controller, "goto 3")
    assert "set 1: 6" in render(controller)


def test_seed_is_idempotent(tmp_path, capsys):
    db_path = str(tmp_path / "seed.db")
    template_id = seed(db_path)
    assert template_id == 1
    assert seed(db_path) is None
    api = SessionAPI(db_path=db_path)
    assert len(api.catalog.fetch_all_exercises()) == 6
    assert len(api.templates.fetch_exercises(template_id)) == 3


def test_main_demo_command(tmp_path, capsys):
    db_path = str(tmp_path / "demo.db")
    main(["--config", str(tmp_path / "missing.yaml"), "demo", "--db", db_path])
    assert "Seed data inserted" in capsys.readouterr().out
    assert SessionAPI(db_path=db_path).catalog.fetch_all_exercises()
